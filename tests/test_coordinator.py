"""Tests for the key exchange coordinator."""

import os

import pytest

from sshtrust.coordinator import KeyExchangeCoordinator
from sshtrust.errors import (
    HostKeyUnavailable,
    KeyRetrievalError,
    RemoteExecutionError,
    SessionError,
)

from conftest import CLIENT_KEY, HOST_KEY_BLOB, FakeExecutor, FakeScanner


def _coordinator(executor, scanner, scratch_dir):
    return KeyExchangeCoordinator(
        executor=executor, scanner=scanner, scratch_dir=scratch_dir, remote_dir="/tmp"
    )


class TestKeyExchangeCoordinator:
    """Test the provisioning sequence."""

    def test_end_to_end_with_cluster(self, cluster_request, scan_output, scratch_dir):
        executor = FakeExecutor()
        scanner = FakeScanner(scan_output)

        result = _coordinator(executor, scanner, scratch_dir).run(cluster_request)

        assert scanner.scanned == ["serverhost1"]
        assert [call[0] for call in executor.calls] == [
            "push", "run", "pull", "push", "run"
        ]
        assert executor.hosts_run() == ["clienthost1", "serverhost1"]
        assert (f"servercluster,serverhost1 ssh-rsa {HOST_KEY_BLOB}"
                in executor.pushed_bodies["clienthost1"])
        assert CLIENT_KEY in executor.pushed_bodies["serverhost1"]
        assert result.client_key.comment == "rsyncusr@clienthost1"
        assert result.host_key.aliases == ("servercluster", "serverhost1")

    def test_without_cluster(self, plain_request, scan_output, scratch_dir):
        executor = FakeExecutor()

        result = _coordinator(executor, FakeScanner(scan_output), scratch_dir).run(plain_request)

        assert result.host_key.known_hosts_lines() == (f"serverhost1 ssh-rsa {HOST_KEY_BLOB}",)
        assert "servercluster" not in executor.pushed_bodies["clienthost1"]

    def test_pubkey_pulled_from_drop_path(self, plain_request, scan_output, scratch_dir):
        executor = FakeExecutor()

        _coordinator(executor, FakeScanner(scan_output), scratch_dir).run(plain_request)

        pulls = [call for call in executor.calls if call[0] == "pull"]
        assert pulls == [("pull", "clienthost1", "/tmp/rsyncusr-id_rsa.pub")]

    def test_scratch_is_cleaned(self, plain_request, scan_output, scratch_dir):
        executor = FakeExecutor()

        result = _coordinator(executor, FakeScanner(scan_output), scratch_dir).run(plain_request)

        assert os.listdir(scratch_dir) == []
        assert result.cleanup_failures == []
        assert executor.closed

    def test_empty_scan_runs_nothing(self, plain_request, scratch_dir):
        executor = FakeExecutor()

        with pytest.raises(HostKeyUnavailable):
            _coordinator(executor, FakeScanner(""), scratch_dir).run(plain_request)

        assert executor.calls == []
        assert os.listdir(scratch_dir) == []

    def test_client_failure_skips_server(self, plain_request, scan_output, scratch_dir):
        executor = FakeExecutor(exit_statuses={"clienthost1": 1})

        with pytest.raises(RemoteExecutionError) as exc_info:
            _coordinator(executor, FakeScanner(scan_output), scratch_dir).run(plain_request)

        assert exc_info.value.phase == "client"
        assert exc_info.value.exit_status == 1
        assert "client phase" in str(exc_info.value)
        assert executor.hosts_run() == ["clienthost1"]
        assert not any(call[1] == "serverhost1" for call in executor.calls)
        assert os.listdir(scratch_dir) == []

    def test_missing_client_key(self, plain_request, scan_output, scratch_dir):
        executor = FakeExecutor(client_key=None)

        with pytest.raises(KeyRetrievalError) as exc_info:
            _coordinator(executor, FakeScanner(scan_output), scratch_dir).run(plain_request)

        assert exc_info.value.phase == "client"
        assert executor.hosts_run() == ["clienthost1"]

    def test_empty_client_key(self, plain_request, scan_output, scratch_dir):
        executor = FakeExecutor(client_key="")

        with pytest.raises(KeyRetrievalError):
            _coordinator(executor, FakeScanner(scan_output), scratch_dir).run(plain_request)

    def test_server_failure(self, plain_request, scan_output, scratch_dir):
        executor = FakeExecutor(exit_statuses={"serverhost1": 2})

        with pytest.raises(RemoteExecutionError) as exc_info:
            _coordinator(executor, FakeScanner(scan_output), scratch_dir).run(plain_request)

        assert exc_info.value.phase == "server"
        assert executor.hosts_run() == ["clienthost1", "serverhost1"]
        assert executor.closed

    def test_transport_error_gets_phase(self, plain_request, scan_output, scratch_dir):
        executor = FakeExecutor()

        def broken_push(local_path, remote_host, remote_dir):
            raise SessionError("SSH authentication to clienthost1 failed")

        executor.push = broken_push

        with pytest.raises(SessionError) as exc_info:
            _coordinator(executor, FakeScanner(scan_output), scratch_dir).run(plain_request)

        assert exc_info.value.phase == "client"
        assert os.listdir(scratch_dir) == []

    def test_runs_use_distinct_scratch(self, plain_request, scan_output, scratch_dir):
        coordinator = _coordinator(FakeExecutor(), FakeScanner(scan_output), scratch_dir)

        first = coordinator.run(plain_request)
        second = coordinator.run(plain_request)

        assert first.run_id != second.run_id
