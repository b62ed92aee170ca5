"""Error hierarchy for the unified replication core.

Every error carries a machine-readable ``reason`` that ends up as the reason
of the intent's Ready condition, and a ``retryable`` flag consulted by the
retry manager.
"""

from typing import Optional


class ReplicationError(Exception):
    """Base class for replication errors."""

    reason = "ReconcileError"
    retryable = False

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if reason is not None:
            self.reason = reason


class ConfigurationError(ReplicationError):
    """Raised for invalid or incomplete configuration. Never retried."""
    reason = "ConfigurationError"


class UnsupportedCapabilityError(ConfigurationError):
    """Raised when a backend cannot satisfy the requested configuration."""
    reason = "UnsupportedCapability"


class InvalidTransitionError(ReplicationError):
    """Raised when the requested state is not reachable from the current one."""
    reason = "InvalidStateTransition"

    def __init__(self, message: str, from_state=None, to_state=None):
        super().__init__(message)
        self.from_state = from_state
        self.to_state = to_state


class TranslationError(ReplicationError):
    """Raised when a value cannot be translated for a backend."""

    reason = "TranslationError"

    INVALID_VALUE = "invalid_value"
    UNSUPPORTED_MAPPING = "unsupported_mapping"
    INCONSISTENT_MAPPING = "inconsistent_mapping"
    MISSING_MAPPING = "missing_mapping"

    def __init__(self, error_type: str, backend: str, field: str, value: str, message: str):
        self.error_type = error_type
        self.backend = backend
        self.field = field
        self.value = value
        self.detail = message
        super().__init__(
            f"translation error ({error_type}) for backend {backend} field {field}='{value}': {message}"
        )


class BackendUnavailableError(ReplicationError):
    """Raised when discovery reports the target backend as not installed."""

    reason = "BackendNotAvailable"

    def __init__(self, backend: Optional[str], message: Optional[str] = None,
                 indeterminate: bool = False):
        super().__init__(message or f"backend {backend} not available in cluster")
        self.backend = backend
        # Set when discovery could not decide, as opposed to finding the backend absent.
        self.indeterminate = indeterminate


class TransientBackendError(ReplicationError):
    """Raised for network, timeout and server-side failures."""
    reason = "TransientBackendError"
    retryable = True


class BackendRejectedError(ReplicationError):
    """Raised when the backend refuses a request outright."""
    reason = "BackendRejected"


class PartialReconcileError(ReplicationError):
    """Raised when a multi-step write completed only some of its steps."""

    reason = "PartialFailure"

    def __init__(self, message: str, completed_steps=None, failed_step: str = ""):
        super().__init__(message)
        self.completed_steps = list(completed_steps or [])
        self.failed_step = failed_step


class CircuitOpenError(ReplicationError):
    """Raised without calling the backend while its circuit is open."""

    reason = "CircuitOpen"

    def __init__(self, backend: str):
        super().__init__(f"circuit breaker is open for backend {backend}")
        self.backend = backend


class RetriesExhaustedError(ReplicationError):
    """Raised when every retry attempt failed."""

    reason = "RetriesExhausted"

    def __init__(self, attempts: int, last_error: Exception):
        super().__init__(f"operation failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class AdapterNotFoundError(ReplicationError):
    """Raised when no adapter is registered for a backend."""
    reason = "AdapterNotFound"


class DuplicateRegistrationError(ReplicationError):
    """Raised when a backend is registered twice in the same registry."""
    reason = "DuplicateRegistration"


class DiscoveryError(ReplicationError):
    """Soft error recorded while checking a backend during discovery."""

    reason = "DiscoveryError"

    CRD_NOT_FOUND = "crd_not_found"
    TIMEOUT = "timeout"
    PERMISSION_DENIED = "permission_denied"
    UNKNOWN = "unknown"

    def __init__(self, kind: str, backend: str, message: str):
        super().__init__(f"discovery error ({kind}) for backend {backend}: {message}")
        self.kind = kind
        self.backend = backend


class ResourceClientError(ReplicationError):
    """Raised by a resource client when the substrate call fails."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


TRANSIENT_MARKERS = (
    "connection refused",
    "timeout",
    "temporary failure",
    "service unavailable",
)


def is_retryable(error: BaseException) -> bool:
    """Decide whether an error is worth another attempt."""
    if isinstance(error, ReplicationError):
        return error.retryable
    if isinstance(error, (ConnectionError, TimeoutError)):
        return True
    text = str(error).lower()
    return any(marker in text for marker in TRANSIENT_MARKERS)


def reason_for(error: BaseException) -> str:
    """Return the condition reason code for an error."""
    if isinstance(error, ReplicationError):
        return error.reason
    return "ReconcileError"
