class DomainError(Exception):
    """Base exception for attendance rule violations.

    ``kind`` is the machine-readable name surfaced next to the message;
    ``retryable`` tells the caller whether re-invoking the same transition
    with unchanged input may succeed.
    """

    kind = "domain"
    retryable = False


class ValidationError(DomainError):
    """Raised when a required selection or input is missing or invalid."""

    kind = "validation"


class VerificationError(DomainError):
    """Raised when verification evidence is stale or does not match the method."""

    kind = "verification"


class ConflictError(DomainError):
    """Raised on duplicate or concurrent transitions (double clock-in, in-flight call)."""

    kind = "conflict"


class StateError(DomainError):
    """Raised when a transition is not valid for the current state."""

    kind = "state"


class PreparationError(DomainError):
    """Raised when a verification strategy cannot be set up."""

    kind = "preparation"


class PositionUnavailable(DomainError):
    """Raised by position sources when permission is denied or the fix times out.

    Recoverable through a manual store override.
    """

    kind = "position_unavailable"


class TransportError(DomainError):
    """Raised when the backend cannot be reached. The only retryable kind."""

    kind = "transport"
    retryable = True
