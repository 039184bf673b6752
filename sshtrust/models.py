"""Data models for a provisioning run."""

import enum
import ipaddress
import os
import re
from dataclasses import dataclass, field, replace
from typing import Optional, Tuple


USER_PATTERN = re.compile(r"^[a-z_][a-z0-9_-]{0,31}$")
HOSTNAME_PATTERN = re.compile(
    r"^(?=.{1,253}$)[A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
    r"(\.[A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?)*\.?$"
)


def validate_user(user: str) -> str:
    """Return ``user`` if it is a valid POSIX account name."""
    if not user or not USER_PATTERN.match(user):
        raise ValueError(f"Invalid user name: {user!r}")
    return user


def validate_address(address: str) -> str:
    """Return ``address`` if it is a host name or an IP literal."""
    if not address:
        raise ValueError("Address is required")
    try:
        ipaddress.ip_address(address)
        return address
    except ValueError:
        pass
    if not HOSTNAME_PATTERN.match(address):
        raise ValueError(f"Invalid address: {address!r}")
    return address


class Role(enum.Enum):
    """Which end of the trust relationship a script is rendered for."""

    CLIENT = "client"
    SERVER = "server"


@dataclass(frozen=True)
class ConnectionRequest:
    """Represents one client/server pair to connect."""

    client_user: str
    server_user: str
    client_address: str
    server_address: str
    cluster_address: Optional[str] = None

    def __post_init__(self):
        """Validate the request data."""
        validate_user(self.client_user)
        validate_user(self.server_user)
        validate_address(self.client_address)
        validate_address(self.server_address)
        if self.cluster_address is not None:
            validate_address(self.cluster_address)

    @classmethod
    def from_arguments(cls, user: str, client: str, server: str,
                       cluster: Optional[str] = None) -> "ConnectionRequest":
        """Build a request where both ends use the same account name."""
        return cls(
            client_user=user,
            server_user=user,
            client_address=client,
            server_address=server,
            cluster_address=cluster or None,
        )

    @property
    def client_token(self) -> str:
        """Key comment identifying the client account."""
        return f"{self.client_user}@{self.client_address}"


@dataclass(frozen=True)
class ServerHostKey:
    """Represents the scanned host key(s) of the server."""

    key_lines: Tuple[str, ...]
    aliases: Tuple[str, ...] = field(default_factory=tuple)
    port: int = 22

    def __post_init__(self):
        """Validate the host key data."""
        if not self.key_lines:
            raise ValueError("At least one host key line is required")
        for line in self.key_lines:
            if len(line.split()) < 3:
                raise ValueError(f"Malformed host key line: {line!r}")
        if not self.aliases:
            raise ValueError("At least one alias is required")

    @classmethod
    def from_scan(cls, address: str, output: str, port: int = 22) -> "ServerHostKey":
        """Build a host key from ``ssh-keyscan`` output for ``address``."""
        lines = tuple(
            line.strip() for line in output.splitlines()
            if line.strip() and not line.lstrip().startswith("#")
        )
        return cls(key_lines=lines, aliases=(address,), port=port)

    def with_alias(self, address: str) -> "ServerHostKey":
        """Return a copy that is also trusted under ``address``."""
        if address in self.aliases:
            return self
        return replace(self, aliases=(address,) + self.aliases)

    def host_names(self) -> Tuple[str, ...]:
        """Aliases as they appear in a known_hosts host field."""
        if self.port == 22:
            return self.aliases
        return tuple(f"[{alias}]:{self.port}" for alias in self.aliases)

    def known_hosts_lines(self) -> Tuple[str, ...]:
        """Render the key lines with every alias in the host field."""
        host_field = ",".join(self.host_names())
        rendered = []
        for line in self.key_lines:
            _, key_type, key = line.split()[:3]
            rendered.append(f"{host_field} {key_type} {key}")
        return tuple(rendered)


@dataclass(frozen=True)
class ClientPublicKey:
    """Represents the public key generated on the client."""

    key_material: str

    def __post_init__(self):
        """Validate the public key data."""
        if not self.key_material or "\n" in self.key_material.strip():
            raise ValueError("Public key must be a single non-empty line")
        if len(self.key_material.split()) < 2:
            raise ValueError("Public key must contain a key type and key data")

    @classmethod
    def from_file(cls, path: str) -> "ClientPublicKey":
        """Load a public key from a local file."""
        with open(path, "r", encoding="utf-8") as f:
            return cls(key_material=f.read().strip())

    @property
    def key_type(self) -> str:
        return self.key_material.split()[0]

    @property
    def blob(self) -> str:
        return self.key_material.split()[1]

    @property
    def comment(self) -> str:
        parts = self.key_material.split(None, 2)
        return parts[2] if len(parts) > 2 else ""


@dataclass(frozen=True)
class GeneratedScript:
    """A rendered shell script bound to one end of a request."""

    role: Role
    body: str
    filename: str

    def write_to(self, directory: str) -> str:
        """Write the script into ``directory`` and return its path."""
        path = os.path.join(directory, self.filename)
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.body)
        os.chmod(path, 0o700)
        return path
