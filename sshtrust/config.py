"""Configuration module for sshtrust."""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _getenv_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Configuration class for sshtrust."""

    # Admin transport configuration
    SSH_PORT = int(os.getenv("SSHTRUST_SSH_PORT", "22"))
    ADMIN_USER = os.getenv("SSHTRUST_ADMIN_USER") or None
    ADMIN_KEY_FILE = os.getenv("SSHTRUST_ADMIN_KEY_FILE") or None
    STRICT_HOST_KEYS = _getenv_bool("SSHTRUST_STRICT_HOST_KEYS", "true")
    SUDO_PASSWORD = os.getenv("SSHTRUST_SUDO_PASSWORD") or None

    # Timeouts (seconds)
    CONNECT_TIMEOUT = int(os.getenv("SSHTRUST_CONNECT_TIMEOUT", "10"))
    COMMAND_TIMEOUT = int(os.getenv("SSHTRUST_COMMAND_TIMEOUT", "300"))
    KEYSCAN_TIMEOUT = int(os.getenv("SSHTRUST_KEYSCAN_TIMEOUT", "10"))

    # Host key scanning
    KEYSCAN_TYPES = os.getenv("SSHTRUST_KEYSCAN_TYPES", "rsa")

    # Scratch space
    SCRATCH_DIR = os.getenv("SSHTRUST_SCRATCH_DIR", "/tmp/sshtrust")
    REMOTE_DIR = os.getenv("SSHTRUST_REMOTE_DIR", "/tmp")

    # Client keypair
    KEY_BITS = int(os.getenv("SSHTRUST_KEY_BITS", "4096"))

    # Logging configuration
    LOG_LEVEL = os.getenv("SSHTRUST_LOG_LEVEL", "INFO")
    LOG_FILE = os.getenv("SSHTRUST_LOG_FILE", "sshtrust.log")

    @classmethod
    def validate(cls):
        """Validate the configuration."""
        if cls.SSH_PORT < 1 or cls.SSH_PORT > 65535:
            raise ValueError("Invalid port number")

        for name in ("CONNECT_TIMEOUT", "COMMAND_TIMEOUT", "KEYSCAN_TIMEOUT"):
            if getattr(cls, name) < 1:
                raise ValueError(f"Invalid {name.lower().replace('_', ' ')}")

        if cls.KEY_BITS < 2048:
            raise ValueError("RSA key size must be at least 2048 bits")

        if not cls.KEYSCAN_TYPES.strip():
            raise ValueError("At least one keyscan key type is required")

        if not cls.REMOTE_DIR.startswith("/"):
            raise ValueError("Remote scratch directory must be an absolute path")
