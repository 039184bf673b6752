"""Host key scanning for the server end."""

import logging
import subprocess
from typing import List, Optional

from .config import Config
from .errors import HostKeyUnavailable
from .models import ServerHostKey


class HostKeyScanner:
    """Fetches public host keys with ``ssh-keyscan``."""

    def __init__(self, key_types: Optional[str] = None, port: Optional[int] = None,
                 timeout: Optional[int] = None):
        """Initialize the scanner from configuration."""
        self.key_types = key_types or Config.KEYSCAN_TYPES
        self.port = port or Config.SSH_PORT
        self.timeout = timeout or Config.KEYSCAN_TIMEOUT
        self.logger = logging.getLogger(__name__)

    def build_command(self, address: str) -> List[str]:
        """Build the ``ssh-keyscan`` command line for ``address``."""
        cmd = ["ssh-keyscan", "-t", self.key_types, "-T", str(self.timeout)]
        if self.port != 22:
            cmd.extend(["-p", str(self.port)])
        cmd.append(address)
        return cmd

    def scan(self, address: str) -> ServerHostKey:
        """
        Scan the host keys offered by ``address``.

        Args:
            address: Server host name or IP address

        Returns:
            The scanned host key, aliased to ``address``

        Raises:
            HostKeyUnavailable: If the scan produced no key
        """
        cmd = self.build_command(address)
        self.logger.debug(f"Running: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout + 5,
            )
        except subprocess.TimeoutExpired as e:
            raise HostKeyUnavailable(f"Host key scan of {address} timed out", phase="scan") from e
        except FileNotFoundError as e:
            raise HostKeyUnavailable("ssh-keyscan is not installed", phase="scan") from e

        # ssh-keyscan reports unreachable hosts on stderr and still exits 0
        if result.stderr.strip():
            self.logger.debug(f"ssh-keyscan stderr: {result.stderr.strip()}")

        try:
            host_key = ServerHostKey.from_scan(address, result.stdout, port=self.port)
        except ValueError as e:
            raise HostKeyUnavailable(
                f"No host key returned for {address}", phase="scan"
            ) from e

        self.logger.info(f"Scanned {len(host_key.key_lines)} host key(s) from {address}")
        return host_key
