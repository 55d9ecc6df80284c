"""Application error taxonomy shared by services and the HTTP layer."""

from postgrest.exceptions import APIError


class AppError(Exception):
    """Base error carrying an HTTP status and a stable error code."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, object] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details


class ValidationError(AppError):
    """Malformed or missing input."""

    status_code = 400
    code = "VALIDATION_ERROR"


class EmptyInputError(ValidationError):
    """An operation was asked to work on nothing."""

    code = "EMPTY_INPUT"


class AuthenticationError(AppError):
    """Missing or invalid credentials."""

    status_code = 401
    code = "AUTHENTICATION_FAILED"


class TokenExpiredError(AuthenticationError):
    code = "TOKEN_EXPIRED"


class PermissionDeniedError(AppError):
    """Caller is authenticated but not allowed."""

    status_code = 403
    code = "PERMISSION_DENIED"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"


class PayloadTooLargeError(AppError):
    status_code = 413
    code = "PAYLOAD_TOO_LARGE"


class UpstreamServiceError(AppError):
    """A dependency (model, directory, object store) failed."""

    status_code = 503
    code = "UPSTREAM_UNAVAILABLE"


class AIServiceError(UpstreamServiceError):
    code = "AI_SERVICE_ERROR"


class DirectoryServiceError(UpstreamServiceError):
    code = "AUTH_SERVICE_ERROR"


class StorageError(UpstreamServiceError):
    code = "STORAGE_ERROR"


class JobQueueFullError(UpstreamServiceError):
    code = "JOB_QUEUE_FULL"


class DatabaseError(AppError):
    code = "DATABASE_ERROR"


_CONSTRAINT_ERRORS: dict[str, tuple[type[AppError], str, str]] = {
    "23505": (ConflictError, "DUPLICATE_ENTRY", "Resource already exists"),
    "23503": (
        ValidationError,
        "INVALID_REFERENCE",
        "Invalid reference to related resource",
    ),
    "23502": (ValidationError, "MISSING_FIELD", "Required field is missing"),
}


def translate_database_error(exc: APIError) -> AppError:
    """Map a PostgREST driver error onto the application taxonomy."""
    mapped = _CONSTRAINT_ERRORS.get(str(exc.code or ""))
    if mapped is None:
        return DatabaseError(
            "Database operation failed",
            details={"dbCode": exc.code} if exc.code else None,
        )
    error_cls, code, message = mapped
    details: dict[str, object] = {"dbCode": exc.code}
    if exc.details:
        details["constraint"] = exc.details
    return error_cls(message, code=code, details=details)
