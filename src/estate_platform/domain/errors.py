"""Engine error taxonomy.

Routes translate every EngineError into an HTTPException using its status_code.
NotificationError is never raised to callers; it is logged at the dispatch
boundary after the state change has already been committed.
"""


class EngineError(Exception):
    """Base class for domain errors surfaced to callers."""

    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(EngineError):
    """Bad or missing action fields. Raised before any state mutation."""

    status_code = 400

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class AuthorizationError(EngineError):
    """Actor is not a party to the booking, or it is not their turn."""

    status_code = 403


class NotFoundError(EngineError):
    status_code = 404


class ConflictError(EngineError):
    """Booking already terminal, not actionable, or a concurrent write won."""

    status_code = 409


class UpstreamError(EngineError):
    """Payment gateway call failed or timed out. No destructive effect applied."""

    status_code = 502


class NotificationError(EngineError):
    """A log, email or in-app notification failed after a committed transition."""

    status_code = 500

    def __init__(self, channel: str, target: str, cause: Exception | None = None):
        self.channel = channel
        self.target = target
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"{channel} delivery to {target} failed{detail}")
