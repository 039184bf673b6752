"""Exceptions raised while provisioning SSH trust."""

from typing import Optional


class ProvisionError(Exception):
    """Base class for failures that abort a provisioning run."""

    exit_code = 1

    def __init__(self, message: str, phase: Optional[str] = None):
        super().__init__(message)
        self.phase = phase

    def __str__(self) -> str:
        message = super().__str__()
        if self.phase:
            return f"[{self.phase} phase] {message}"
        return message


class HostKeyUnavailable(ProvisionError):
    """The server host key scan returned nothing"""

    exit_code = 3


class SessionError(ProvisionError):
    """An SSH session to a managed host could not be opened or used"""

    exit_code = 4


class RemoteTimeoutError(SessionError):
    """A remote command did not finish before its deadline"""


class TransferError(ProvisionError):
    """A file could not be copied to or from a managed host"""

    exit_code = 4


class RemoteFileMissing(TransferError):
    """The remote file to fetch does not exist"""


class RemoteExecutionError(ProvisionError):
    """A pushed script exited with a non-zero status"""

    exit_code = 5

    def __init__(self, message: str, exit_status: int, phase: Optional[str] = None):
        super().__init__(message, phase)
        self.exit_status = exit_status


class KeyRetrievalError(ProvisionError):
    """The client public key was not produced by the client script"""

    exit_code = 6
