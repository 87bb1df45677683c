"""
Escalation - Custom Exceptions.

Centralized exception handling with standardized error responses.
"""

from typing import Any
from uuid import UUID


class EscalationException(Exception):
    """Base exception for the Escalation application."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
        request_id: UUID | None = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        self.request_id = request_id
        super().__init__(message)


class UnauthorizedException(EscalationException):
    """Raised when authentication fails."""

    def __init__(self, message: str = "Invalid or missing authentication token"):
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class ValidationException(EscalationException):
    """Raised for validation errors."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details={"errors": errors} if errors else None,
        )


class FeatureDisabledException(EscalationException):
    """Raised when a feature flag is disabled."""

    def __init__(self, feature_name: str):
        super().__init__(
            code="FEATURE_DISABLED",
            message=f"Feature '{feature_name}' is currently disabled",
            status_code=503,
            details={"feature": feature_name},
        )


class CaseChangedException(EscalationException):
    """Raised when a picker moved to another case while a request was binding it."""

    def __init__(self, case_id: str):
        super().__init__(
            code="CASE_CHANGED",
            message=f"Case {case_id} was replaced by a newer load; retry the request",
            status_code=409,
            details={"case_id": case_id, "retryable": True},
        )


# =============================================================================
# Relation store errors
# =============================================================================


class StoreReadFailure(EscalationException):
    """Raised when the relation store cannot be read. Aborts a load."""

    def __init__(self, operation: str, message: str):
        super().__init__(
            code="STORE_READ_FAILED",
            message=f"{operation} failed: {message}",
            status_code=502,
            details={"operation": operation},
        )


class StoreWriteFailure(EscalationException):
    """Raised when a single bridge row create/delete fails."""

    def __init__(self, operation: str, message: str, tag_id: str | None = None):
        details: dict[str, Any] = {"operation": operation}
        if tag_id:
            details["tag_id"] = tag_id
        super().__init__(
            code="STORE_WRITE_FAILED",
            message=f"{operation} failed: {message}",
            status_code=502,
            details=details,
        )


class TagNotFound(EscalationException):
    """Raised when a cause referenced by a bridge row cannot be resolved."""

    def __init__(self, tag_id: str):
        super().__init__(
            code="TAG_NOT_FOUND",
            message=f"escalation cause not found: {tag_id}",
            status_code=404,
            details={"tag_id": tag_id},
        )


class InvalidReference(EscalationException):
    """Raised when a selected entry has no persisted bridge row."""

    def __init__(self, tag_id: str):
        super().__init__(
            code="INVALID_REFERENCE",
            message=f"selected cause {tag_id} has no bridge row",
            status_code=409,
            details={"tag_id": tag_id},
        )
