"""Domain exceptions for the approval workflow.

Services raise these; the API layer renders them through a single exception
handler registered in ``backoffice.main``. Remote (token) redemption never lets
them escape: it converts them into ``{valid: false, error}`` results.
"""
from typing import Any

from fastapi import status


class WorkflowError(Exception):
    """Base class for all approval workflow errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    error_code: str = "workflow_error"

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        self.message = message
        self.errors = errors or []
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"detail": self.message, "error_code": self.error_code}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationError(WorkflowError):
    """Malformed input, rejected before any state change."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "validation_error"

    def __init__(self, message: str, field: str | None = None, errors: list[dict[str, Any]] | None = None):
        if field and not errors:
            errors = [{"field": field, "message": message}]
        super().__init__(message, errors)


class NotFound(WorkflowError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "not_found"


class Forbidden(WorkflowError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "forbidden"


class InvalidState(WorkflowError):
    """Step already decided, decided out of order, or lost a decision race."""

    status_code = status.HTTP_409_CONFLICT
    error_code = "invalid_state"


class ConfigurationError(WorkflowError):
    """Inconsistent policy or missing server configuration."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "configuration_error"
