"""Service-level exceptions for user workflows."""
from __future__ import annotations
from typing import Any, Optional


class ServiceError(Exception):
    """Workflow error with an HTTP-style status and a stable code."""

    status = 500
    code = "SERVICE_ERROR"

    def __init__(self, detail: str, status: Optional[int] = None, code: Optional[str] = None):
        self.detail = detail
        if status is not None:
            self.status = status
        if code is not None:
            self.code = code
        super().__init__(detail)

    def to_dict(self) -> dict:
        """Convert to an error response body."""
        return {
            "status": str(self.status),
            "detail": self.detail,
            "code": self.code,
        }


class AlreadyExists(ServiceError):
    """Unique field already taken by another user."""

    status = 409
    code = "ALREADY_EXISTS"

    def __init__(self, entity: str, field: str, value: Any):
        self.entity = entity
        self.field = field
        self.value = value
        super().__init__(f"{entity} with {field} {value} existed")


class NotFound(ServiceError):
    """Lookup of a missing record."""

    status = 404
    code = "NOT_FOUND"

    def __init__(self, entity: str, field: str, value: Any):
        self.entity = entity
        self.field = field
        self.value = value
        super().__init__(f"{entity} with {field} {value} does not exist")


class ValidationFailure(ServiceError):
    """Malformed input rejected before any side effect."""

    status = 400
    code = "VALIDATION_FAILURE"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)
