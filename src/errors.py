"""
Error taxonomy for DMS endpoint reconciliation.

Remote faults keep the control plane's error code so callers can classify
them. Only access-denial during create is treated as transient.
"""

from typing import Optional

TRANSIENT_AUTH_CODES = frozenset({"AccessDeniedFault"})
NOT_FOUND_CODES = frozenset({"ResourceNotFoundFault"})


class DmsError(Exception):
    """Base class for all endpoint reconciliation errors."""


class RemoteFault(DmsError):
    """Raised when the remote control plane rejects a call."""

    def __init__(self, code: str, message: str = "", operation: str = ""):
        self.code = code
        self.message = message
        self.operation = operation
        detail = f"{operation}: " if operation else ""
        super().__init__(f"{detail}{code}: {message}" if message else f"{detail}{code}")

    @property
    def is_transient_auth(self) -> bool:
        """Access denial, commonly IAM propagation delay right after provisioning."""
        return self.code in TRANSIENT_AUTH_CODES

    @property
    def is_not_found(self) -> bool:
        return self.code in NOT_FOUND_CODES


class RetryTimeoutError(DmsError):
    """Raised when a retried operation exhausts its time ceiling."""

    def __init__(self, operation: str, timeout: float, last_fault: Optional[RemoteFault]):
        self.operation = operation
        self.timeout = timeout
        self.last_fault = last_fault
        super().__init__(
            f"{operation} did not succeed within {timeout:g}s"
            + (f": {last_fault}" if last_fault else "")
        )


class EndpointValidationError(DmsError):
    """Raised when an endpoint declaration fails validation."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidRequestError(DmsError):
    """Raised when a request is rejected before it is sent."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        self.message = message
        super().__init__(f"{operation}: {message}")
