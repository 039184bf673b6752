"""Shared fixtures for sshtrust tests."""

import os
from typing import List, Optional, Tuple

import pytest

from sshtrust.errors import HostKeyUnavailable, RemoteFileMissing
from sshtrust.models import ConnectionRequest, ServerHostKey


HOST_KEY_BLOB = "AAAAB3NzaC1yc2EAAAADAQABAAABAQCserverkey"
CLIENT_KEY = "ssh-rsa AAAAB3NzaC1yc2EAAAADAQABAAACAQCclientkey rsyncusr@clienthost1"


class FakeExecutor:
    """Records executor calls instead of talking to hosts."""

    def __init__(self, exit_statuses: Optional[dict] = None, client_key: Optional[str] = CLIENT_KEY):
        self.exit_statuses = exit_statuses or {}
        self.client_key = client_key
        self.calls: List[Tuple] = []
        self.pushed_bodies: dict = {}
        self.closed = False

    def push(self, local_path, remote_host, remote_dir):
        self.calls.append(("push", remote_host, os.path.basename(local_path)))
        with open(local_path, "r", encoding="utf-8") as f:
            self.pushed_bodies[remote_host] = f.read()
        return f"{remote_dir}/{os.path.basename(local_path)}"

    def run_privileged(self, remote_host, remote_path):
        self.calls.append(("run", remote_host, remote_path))
        return self.exit_statuses.get(remote_host, 0)

    def pull(self, remote_host, remote_path, local_path):
        self.calls.append(("pull", remote_host, remote_path))
        if self.client_key is None:
            raise RemoteFileMissing(f"{remote_host}:{remote_path} does not exist")
        with open(local_path, "w", encoding="utf-8") as f:
            f.write(self.client_key + "\n")

    def close_all(self):
        self.closed = True

    def hosts_run(self) -> List[str]:
        return [call[1] for call in self.calls if call[0] == "run"]


class FakeScanner:
    """Returns a fixed scan result for any address."""

    def __init__(self, output: str = ""):
        self.output = output
        self.scanned: List[str] = []

    def scan(self, address):
        self.scanned.append(address)
        try:
            return ServerHostKey.from_scan(address, self.output)
        except ValueError as e:
            raise HostKeyUnavailable(f"No host key returned for {address}", phase="scan") from e


@pytest.fixture
def cluster_request():
    return ConnectionRequest.from_arguments(
        "rsyncusr", "clienthost1", "serverhost1", "servercluster"
    )


@pytest.fixture
def plain_request():
    return ConnectionRequest.from_arguments("rsyncusr", "clienthost1", "serverhost1")


@pytest.fixture
def scan_output():
    return f"# serverhost1:22 SSH-2.0-OpenSSH_9.6\nserverhost1 ssh-rsa {HOST_KEY_BLOB}\n"


@pytest.fixture
def scratch_dir(tmp_path):
    return str(tmp_path / "scratch")
