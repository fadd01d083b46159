"""
Application error taxonomy.

Every error carries an HTTP status code and a stable machine-readable
`code`, so the API layer can render a consistent response without knowing
which service raised it.
"""
from typing import Any, Dict, Iterable, List, Optional

from fastapi import status


class AppException(Exception):
    """Base application exception."""

    code = "application_error"

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        code: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        if code:
            self.code = code
        super().__init__(self.message)


def _field_name(loc: Iterable[Any]) -> str:
    parts = [str(part) for part in loc if part != "body"]
    return ".".join(parts) or "body"


class ValidationError(AppException):
    """Invalid input. Lists every offending field, never just the first."""

    code = "validation_error"

    def __init__(self, errors: List[Dict[str, str]], message: str = "Validation failed"):
        self.errors = errors
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"errors": errors},
        )

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls([{"field": field, "message": message, "type": "value_error"}])

    @classmethod
    def from_pydantic(cls, errors: Iterable[Dict[str, Any]]) -> "ValidationError":
        """Build from pydantic's `exc.errors()` list."""
        formatted = []
        for error in errors:
            message = str(error.get("msg", "Invalid value"))
            if message.startswith("Value error, "):
                message = message[len("Value error, "):]
            formatted.append({
                "field": _field_name(error.get("loc", ())),
                "message": message,
                "type": error.get("type", "value_error"),
            })
        return cls(formatted)

    @property
    def fields(self) -> List[str]:
        return [error["field"] for error in self.errors]


class AuthenticationError(AppException):
    """No identity or an invalid one."""

    code = "authentication_error"

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message=message, status_code=status.HTTP_401_UNAUTHORIZED)


class AuthorizationError(AppException):
    """Identity present, but role or ownership is insufficient."""

    code = "authorization_error"

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message=message, status_code=status.HTTP_403_FORBIDDEN)


class NotFoundError(AppException):
    """Resource missing, or outside the caller's visibility scope."""

    code = "not_found"

    def __init__(self, resource: str, resource_id: Optional[Any] = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with id '{resource_id}' not found"
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "resource_id": str(resource_id) if resource_id is not None else None},
        )


class InvalidStateError(AppException):
    """Operation not legal in the current booking/request state."""

    code = "invalid_state"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, status_code=status.HTTP_400_BAD_REQUEST, details=details)


class InvalidTransitionError(AppException):
    """No-op or illegal booking status change."""

    code = "invalid_transition"

    def __init__(self, current: str, requested: str, message: Optional[str] = None):
        self.current = current
        self.requested = requested
        super().__init__(
            message=message or f"Cannot change booking status from '{current}' to '{requested}'",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"current_status": current, "requested_status": requested},
        )


class DuplicateRequestError(AppException):
    """A pending cancellation request already exists for the booking."""

    code = "duplicate_request"

    def __init__(self, message: str = "A cancellation request is already pending for this booking"):
        super().__init__(message=message, status_code=status.HTTP_400_BAD_REQUEST)


class AlreadyProcessedError(AppException):
    """The cancellation request is no longer pending."""

    code = "already_processed"

    def __init__(self, message: str = "Cancellation request has already been processed"):
        super().__init__(message=message, status_code=status.HTTP_400_BAD_REQUEST)


class ConflictError(AppException):
    """Concurrent modification detected (stale version)."""

    code = "conflict"

    def __init__(self, message: str = "The record was modified by another request, reload and retry"):
        super().__init__(message=message, status_code=status.HTTP_409_CONFLICT)


class StorageError(AppException):
    """Transaction or commit failure. Never exposes internal detail to callers."""

    code = "storage_error"

    def __init__(self, message: str = "Storage operation failed"):
        super().__init__(message=message, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
