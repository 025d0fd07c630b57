"""PetHaven exception hierarchy.

Every error surfaced to a caller carries an HTTP status code and a
machine-readable kind. The API layer renders them as
``{"detail": message, "kind": kind}``.
"""


class PetHavenError(Exception):
    """Base exception for all PetHaven errors."""

    status_code: int = 500
    kind: str = "error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or self.kind


class Unauthenticated(PetHavenError):
    """No valid session or API key was presented."""

    status_code = 401
    kind = "unauthenticated"


class Forbidden(PetHavenError):
    """Authenticated, but the caller's role does not permit the action."""

    status_code = 403
    kind = "forbidden"


class NotFound(PetHavenError):
    """A pet, verification or user reference is missing."""

    status_code = 404
    kind = "not_found"


class ValidationError(PetHavenError):
    """Missing or malformed required fields."""

    status_code = 400
    kind = "validation_error"

    def __init__(self, message: str = "", field: str | None = None):
        super().__init__(message)
        self.field = field


class InvalidStateError(ValidationError):
    """The verification's current status does not allow the action."""

    kind = "invalid_state"


class Expired(PetHavenError):
    """The verification chat window has closed."""

    status_code = 410
    kind = "expired"


class Conflict(PetHavenError):
    """The write was based on a stale read or contradicts an existing record."""

    status_code = 409
    kind = "conflict"


class StorageError(PetHavenError):
    """The backing store failed (connectivity, driver errors)."""

    status_code = 503
    kind = "storage_error"
