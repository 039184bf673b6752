"""Orchestrates the key exchange between a client and a server."""

import logging
import os
import posixpath
import uuid
from dataclasses import dataclass, field
from typing import List, Optional

from .cleanup import cleanup
from .config import Config
from .errors import (
    KeyRetrievalError,
    ProvisionError,
    RemoteExecutionError,
    RemoteFileMissing,
)
from .executor import RemoteExecutor
from .keyscan import HostKeyScanner
from .logging import log_phase_failure, log_phase_start, log_phase_success
from .models import ClientPublicKey, ConnectionRequest, GeneratedScript, ServerHostKey
from .scripts import render_client_script, render_server_script


@dataclass
class ProvisionResult:
    """Outcome of a successful run."""

    request: ConnectionRequest
    host_key: ServerHostKey
    client_key: ClientPublicKey
    run_id: str
    cleanup_failures: List[str] = field(default_factory=list)


class KeyExchangeCoordinator:
    """Runs the client phase and then the server phase for one request."""

    def __init__(self, executor: Optional[RemoteExecutor] = None,
                 scanner: Optional[HostKeyScanner] = None,
                 scratch_dir: Optional[str] = None,
                 remote_dir: Optional[str] = None):
        """Initialize the coordinator with its collaborators."""
        self.executor = executor or RemoteExecutor()
        self.scanner = scanner or HostKeyScanner()
        self.scratch_dir = scratch_dir or Config.SCRATCH_DIR
        self.remote_dir = remote_dir or Config.REMOTE_DIR
        self.logger = logging.getLogger(__name__)

    def run(self, request: ConnectionRequest) -> ProvisionResult:
        """
        Establish trust from the client account to the server account.

        Args:
            request: Client/server pair to connect

        Returns:
            Details of the completed run

        Raises:
            ProvisionError: On the first failing step; later steps are skipped
        """
        run_id = uuid.uuid4().hex[:8]
        run_dir = os.path.join(self.scratch_dir, run_id)
        os.makedirs(run_dir, mode=0o700)
        artifacts: List[str] = []

        self.logger.info(
            f"Run {run_id}: {request.client_token} -> "
            f"{request.server_user}@{request.server_address}"
            + (f" (cluster {request.cluster_address})" if request.cluster_address else "")
        )

        try:
            host_key = self._scan(request)
            client_key = self._provision_client(request, host_key, run_dir, run_id, artifacts)
            self._provision_server(request, client_key, run_dir, run_id, artifacts)
        finally:
            failures = cleanup(artifacts, self.logger, directory=run_dir)
            self.executor.close_all()

        self.logger.info(f"Run {run_id} completed successfully")
        return ProvisionResult(
            request=request,
            host_key=host_key,
            client_key=client_key,
            run_id=run_id,
            cleanup_failures=failures,
        )

    def _scan(self, request: ConnectionRequest) -> ServerHostKey:
        """Resolve the server host key and apply the cluster alias."""
        log_phase_start(self.logger, "scan", request.server_address, "resolving host key")
        try:
            host_key = self.scanner.scan(request.server_address)
        except ProvisionError as e:
            log_phase_failure(self.logger, "scan", request.server_address, str(e))
            raise

        if request.cluster_address:
            host_key = host_key.with_alias(request.cluster_address)

        log_phase_success(self.logger, "scan", request.server_address)
        return host_key

    def _provision_client(self, request: ConnectionRequest, host_key: ServerHostKey,
                          run_dir: str, run_id: str, artifacts: List[str]) -> ClientPublicKey:
        """Run the client script and fetch the client public key."""
        host = request.client_address
        log_phase_start(self.logger, "client", host, f"User: {request.client_user}")

        pubkey_name = f"{request.client_user}-id_rsa.pub"
        script = render_client_script(
            request.client_user,
            request.client_address,
            request.server_address,
            host_key,
            pubkey_drop=posixpath.join(self.remote_dir, pubkey_name),
            run_id=run_id,
        )
        self._execute(script, host, "client", run_dir, artifacts)

        local_key = os.path.join(run_dir, pubkey_name)
        artifacts.append(local_key)
        try:
            self.executor.pull(host, posixpath.join(self.remote_dir, pubkey_name), local_key)
            client_key = ClientPublicKey.from_file(local_key)
        except RemoteFileMissing as e:
            error = KeyRetrievalError(f"Client public key was not produced: {e}", phase="client")
            log_phase_failure(self.logger, "client", host, str(error))
            raise error from e
        except (OSError, ValueError) as e:
            error = KeyRetrievalError(f"Client public key is unreadable: {e}", phase="client")
            log_phase_failure(self.logger, "client", host, str(error))
            raise error from e
        except ProvisionError as e:
            e.phase = e.phase or "client"
            log_phase_failure(self.logger, "client", host, str(e))
            raise

        log_phase_success(self.logger, "client", host)
        return client_key

    def _provision_server(self, request: ConnectionRequest, client_key: ClientPublicKey,
                          run_dir: str, run_id: str, artifacts: List[str]):
        """Authorize the client public key on the server."""
        host = request.server_address
        log_phase_start(self.logger, "server", host, f"User: {request.server_user}")

        script = render_server_script(
            request.server_user,
            request.client_user,
            request.client_address,
            client_key,
            run_id=run_id,
        )
        try:
            self._execute(script, host, "server", run_dir, artifacts)
        except ProvisionError:
            self.logger.error(
                f"Client {request.client_address} already trusts {host} but {host} "
                f"does not trust {request.client_token}; re-run once the server is fixed"
            )
            raise

        log_phase_success(self.logger, "server", host)

    def _execute(self, script: GeneratedScript, host: str, phase: str,
                 run_dir: str, artifacts: List[str]):
        """Write, push and run one script, failing on a non-zero exit."""
        artifacts.append(os.path.join(run_dir, script.filename))
        local_path = script.write_to(run_dir)

        try:
            remote_path = self.executor.push(local_path, host, self.remote_dir)
            exit_status = self.executor.run_privileged(host, remote_path)
        except ProvisionError as e:
            e.phase = e.phase or phase
            log_phase_failure(self.logger, phase, host, str(e))
            raise

        if exit_status != 0:
            error = RemoteExecutionError(
                f"{script.filename} exited with status {exit_status} on {host}",
                exit_status=exit_status,
                phase=phase,
            )
            log_phase_failure(self.logger, phase, host, str(error))
            raise error
