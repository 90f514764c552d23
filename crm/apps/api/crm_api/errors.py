"""API error taxonomy.

Every error that reaches the HTTP boundary is rendered as
``{"error": {"code", "message", "details"?}}`` by the exception handlers
registered in ``crm_api.main``. Authentication and authorization errors
carry generic messages so they never reveal whether a tenant or row exists.
"""

from typing import Any, Optional


class ErrorCodes:
    """Stable machine-readable error codes."""

    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONFLICT = "CONFLICT"
    PROVISIONING_FAILED = "PROVISIONING_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


class ApiError(Exception):
    """Base exception for errors surfaced to API callers."""

    status_code: int = 500
    code: str = ErrorCodes.INTERNAL_ERROR
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Any] = None,
    ):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Render the error envelope body."""
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            error["details"] = self.details
        return {"error": error}


class Unauthenticated(ApiError):
    """No valid session."""

    status_code = 401
    code = ErrorCodes.UNAUTHORIZED
    default_message = "Unauthorized"


class Forbidden(ApiError):
    """Authenticated, but no resolvable organization or not allowed."""

    status_code = 403
    code = ErrorCodes.FORBIDDEN
    default_message = "Forbidden"


class NotFound(ApiError):
    """Entity absent, or owned by another organization."""

    status_code = 404
    code = ErrorCodes.NOT_FOUND
    default_message = "Resource not found"


class ValidationError(ApiError):
    """Request failed validation.

    ``details`` is a list of ``{"field", "message"}`` entries.
    """

    status_code = 400
    code = ErrorCodes.VALIDATION_ERROR
    default_message = "Validation failed"

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(details=[{"field": field, "message": message}])


class ProvisioningFailed(ApiError):
    """Organization or membership insert failed."""

    status_code = 500
    code = ErrorCodes.PROVISIONING_FAILED
    default_message = "Failed to create organization"


class InternalError(ApiError):
    """Unclassified failure."""

    status_code = 500
    code = ErrorCodes.INTERNAL_ERROR
