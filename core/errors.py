"""
Shared error types for core services.
"""


class ServiceError(Exception):
    """Base for errors that map onto a client-facing response."""

    status_code = 500
    default_code = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        data: dict | None = None,
    ):
        super().__init__(message)
        self.code = code or self.default_code
        self.data = data


class ValidationIssue(ServiceError, ValueError):
    status_code = 400
    default_code = "validation_error"

    def __init__(
        self,
        message: str,
        field: str = "unknown",
        error_type: str = "invalid",
        error_code: str | None = None,
        data: dict | None = None,
    ):
        super().__init__(message, code=error_code or error_type, data=data)
        self.field = field
        self.error_type = error_type
        self.error_code = error_code


class AuthenticationRequired(ServiceError):
    status_code = 401
    default_code = "unauthenticated"


class PermissionDenied(ServiceError):
    status_code = 403
    default_code = "forbidden"


class NotFoundIssue(ServiceError):
    status_code = 404
    default_code = "not_found"


class ConflictIssue(ServiceError):
    """State conflicts: self-reference, duplicates, already/not following."""

    status_code = 400
    default_code = "conflict"


class DependencyFailure(ServiceError):
    """Raised when an external collaborator stays unavailable after retries."""

    status_code = 500
    default_code = "dependency_error"


class InternalFailure(ServiceError):
    status_code = 500
    default_code = "internal_error"
