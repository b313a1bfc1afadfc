"""
Error taxonomy for the GCE node orchestrator.

Retry and idempotence decisions are keyed off the machine-readable ``code``
carried by ``PlatformError``, never off message text.
"""

from typing import Optional

NOT_FOUND = "NOT_FOUND"
ALREADY_EXISTS = "ALREADY_EXISTS"
CONDITION_NOT_MET = "CONDITION_NOT_MET"
RESOURCE_IN_USE = "RESOURCE_IN_USE"

# Codes as they appear in the error list of a finished operation
OPERATION_ERROR_CODES = {
    "RESOURCE_NOT_FOUND": NOT_FOUND,
    "RESOURCE_ALREADY_EXISTS": ALREADY_EXISTS,
    "RESOURCE_IN_USE_BY_ANOTHER_RESOURCE": RESOURCE_IN_USE,
}


class ComputeError(RuntimeError):
    """Base class for all orchestrator errors."""


class TransportFailure(ComputeError):
    """Retries exhausted while talking to the platform."""


class PlatformError(ComputeError):
    """Error reported by the platform with a machine-readable code."""

    def __init__(self, code: str, message: str, status: Optional[int] = None):
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message
        self.status = status


class Conflict(PlatformError):
    """Stale fingerprint or concurrent modification."""

    def __init__(self, message: str, status: Optional[int] = None, operation=None):
        super().__init__(CONDITION_NOT_MET, message, status=status)
        self.operation = operation


class OperationFailed(PlatformError):
    """An operation reached DONE carrying errors."""

    def __init__(self, code: str, message: str, operation=None):
        super().__init__(code, message)
        self.operation = operation


class OperationTimeout(ComputeError):
    """Polling exceeded the caller's deadline.

    The operation may still complete later; ``operation`` can be re-polled.
    """

    def __init__(self, operation, elapsed: float):
        super().__init__(
            f"Timeout waiting for operation {operation.name} after {elapsed:.1f}s"
        )
        self.operation = operation
        self.elapsed = elapsed


class OperationLost(ComputeError):
    """The operation record itself no longer exists."""

    def __init__(self, operation):
        super().__init__(f"Operation {operation.name} not found")
        self.operation = operation


class GroupProvisioningError(ComputeError):
    """Some nodes of a group could not be created."""

    def __init__(self, result):
        failed = ", ".join(f.name for f in result.failed)
        skipped = ", ".join(result.skipped)
        super().__init__(
            f"{len(result.failed)} node(s) failed [{failed}], "
            f"{len(result.skipped)} skipped [{skipped}], "
            f"{len(result.created)} created"
        )
        self.result = result
