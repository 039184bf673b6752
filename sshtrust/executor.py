"""Runs generated scripts on managed hosts over SSH."""

import logging
import os
import posixpath
import shlex
import socket
import time
from typing import Dict, Optional

import paramiko
from paramiko.ssh_exception import (
    AuthenticationException,
    BadHostKeyException,
    SSHException,
)

from .config import Config
from .errors import RemoteFileMissing, RemoteTimeoutError, SessionError, TransferError


POLL_INTERVAL = 0.2


class RemoteExecutor:
    """Pushes, runs and pulls files over the admin host's SSH identity."""

    def __init__(self, config=Config):
        """Initialize the executor with no open sessions."""
        self.config = config
        self.logger = logging.getLogger(__name__)
        self.sessions: Dict[str, paramiko.SSHClient] = {}

    def connect(self, remote_host: str) -> paramiko.SSHClient:
        """Return the session for ``remote_host``, opening it if needed."""
        if remote_host in self.sessions:
            return self.sessions[remote_host]

        client = paramiko.SSHClient()
        client.load_system_host_keys()
        if self.config.STRICT_HOST_KEYS:
            client.set_missing_host_key_policy(paramiko.RejectPolicy())
        else:
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        try:
            client.connect(
                hostname=remote_host,
                port=self.config.SSH_PORT,
                username=self.config.ADMIN_USER,
                key_filename=self._key_filename(),
                timeout=self.config.CONNECT_TIMEOUT,
                look_for_keys=True,
                allow_agent=True,
                auth_timeout=30
            )
        except socket.timeout as e:
            raise SessionError(f"SSH connection to {remote_host} timed out") from e
        except socket.gaierror as e:
            raise SessionError(f"Hostname {remote_host} could not be resolved") from e
        except AuthenticationException as e:
            raise SessionError(f"SSH authentication to {remote_host} failed") from e
        except BadHostKeyException as e:
            raise SessionError(f"Host key of {remote_host} does not match known_hosts") from e
        except SSHException as e:
            raise SessionError(f"Unable to establish SSH connection to {remote_host}: {e}") from e
        except OSError as e:
            raise SessionError(f"SSH connection to {remote_host} failed: {e}") from e

        self.logger.info(f"SSH session established to {remote_host}:{self.config.SSH_PORT}")
        self.sessions[remote_host] = client
        return client

    def _key_filename(self) -> Optional[str]:
        """Admin key file with any leading ``~`` expanded."""
        if not self.config.ADMIN_KEY_FILE:
            return None
        return os.path.expanduser(self.config.ADMIN_KEY_FILE)

    def push(self, local_path: str, remote_host: str, remote_dir: str) -> str:
        """
        Copy a local file into a directory on a managed host.

        Args:
            local_path: File to copy
            remote_host: Destination host
            remote_dir: Destination directory

        Returns:
            Path of the copied file on the remote host
        """
        client = self.connect(remote_host)
        remote_path = posixpath.join(remote_dir, os.path.basename(local_path))

        try:
            with client.open_sftp() as sftp:
                sftp.put(local_path, remote_path)
                sftp.chmod(remote_path, 0o700)
        except (OSError, SSHException) as e:
            raise TransferError(
                f"Could not copy {local_path} to {remote_host}:{remote_path}: {e}"
            ) from e

        self.logger.debug(f"Copied {local_path} to {remote_host}:{remote_path}")
        return remote_path

    def pull(self, remote_host: str, remote_path: str, local_path: str):
        """Copy a file from a managed host to the local filesystem."""
        client = self.connect(remote_host)

        try:
            with client.open_sftp() as sftp:
                sftp.get(remote_path, local_path)
        except FileNotFoundError as e:
            raise RemoteFileMissing(f"{remote_host}:{remote_path} does not exist") from e
        except (OSError, SSHException) as e:
            raise TransferError(
                f"Could not copy {remote_host}:{remote_path} to {local_path}: {e}"
            ) from e

        self.logger.debug(f"Copied {remote_host}:{remote_path} to {local_path}")

    def run_privileged(self, remote_host: str, remote_path: str,
                       timeout: Optional[int] = None) -> int:
        """
        Run a pushed script through sudo on a terminal-backed session.

        Args:
            remote_host: Host holding the script
            remote_path: Path of the script on that host
            timeout: Seconds to wait for the script to exit

        Returns:
            Exit status of the script

        Raises:
            RemoteTimeoutError: If the script is still running at the deadline
            SessionError: If the session fails while the script runs
        """
        client = self.connect(remote_host)
        timeout = timeout or self.config.COMMAND_TIMEOUT
        password = self.config.SUDO_PASSWORD

        if password:
            command = f"sudo -S -p '' sh {shlex.quote(remote_path)}"
        else:
            command = f"sudo sh {shlex.quote(remote_path)}"

        channel = None
        try:
            transport = client.get_transport()
            if transport is None or not transport.is_active():
                raise SessionError(f"SSH session to {remote_host} is not active")

            channel = transport.open_session()
            # sudo may need a controlling terminal to prompt
            channel.get_pty()
            channel.exec_command(command)
            self.logger.info(f"Running {remote_path} on {remote_host}")

            if password:
                channel.sendall(f"{password}\n".encode())

            deadline = time.monotonic() + timeout
            pending = b""
            while not channel.exit_status_ready():
                if time.monotonic() > deadline:
                    raise RemoteTimeoutError(
                        f"{remote_path} on {remote_host} did not finish within {timeout}s"
                    )
                pending = self._drain(channel, remote_host, pending)
                time.sleep(POLL_INTERVAL)

            pending = self._drain(channel, remote_host, pending)
            if pending:
                self._log_output(remote_host, pending)
            exit_status = channel.recv_exit_status()

        except (SSHException, OSError) as e:
            raise SessionError(f"SSH session to {remote_host} failed: {e}") from e
        finally:
            if channel is not None:
                channel.close()

        self.logger.info(f"{remote_path} on {remote_host} exited with status {exit_status}")
        return exit_status

    def _drain(self, channel: paramiko.Channel, remote_host: str, pending: bytes) -> bytes:
        """Log complete output lines and return the unfinished tail."""
        while channel.recv_ready():
            data = channel.recv(4096)
            if not data:
                break
            pending += data

        *lines, pending = pending.split(b"\n")
        for line in lines:
            self._log_output(remote_host, line)
        return pending

    def _log_output(self, remote_host: str, line: bytes):
        """Log one line of remote output with the sudo password masked."""
        text = line.decode("utf-8", errors="replace").rstrip("\r")
        if self.config.SUDO_PASSWORD:
            text = text.replace(self.config.SUDO_PASSWORD, "****")
        if text.strip():
            self.logger.debug(f"[{remote_host}] {text}")

    def close_all(self):
        """Close every open session."""
        for remote_host, client in list(self.sessions.items()):
            try:
                client.close()
            except (SSHException, OSError) as e:
                self.logger.warning(f"Error closing session to {remote_host}: {e}")
            del self.sessions[remote_host]

        self.logger.debug("All sessions closed")
