"""
Shared error handling for the Campus Access Layer.

Every error raised across a service boundary is a ``CampusError`` with a
stable machine-readable ``code``. ``status_code`` is what the HTTP layer
answers with when the error escapes a route.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    retry: bool = False
    details: Dict[str, Any] = Field(default_factory=dict)


class CampusError(Exception):
    """Base exception for Campus Access Layer services."""

    status_code = 400
    retryable = False

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            retry=self.retryable,
            details=self.details
        )


class ValidationError(CampusError):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class ProfileNotFoundError(CampusError):
    """No profile exists in the targeted partition."""

    status_code = 404

    def __init__(self, uid: str, partition: str):
        super().__init__(
            "PROFILE_NOT_FOUND",
            f"No profile for {uid} in {partition}",
            {"uid": uid, "partition": partition}
        )


class ReconciliationError(CampusError):
    """Owning partition could not be determined; no role may be assumed."""

    status_code = 503
    retryable = True

    def __init__(self, message: str = "Could not reconcile user profile", details: Optional[Dict[str, Any]] = None):
        super().__init__("RECONCILIATION_FAILED", message, details)


class PersistenceError(CampusError):
    """A targeted read or write against the profile store failed."""

    status_code = 503
    retryable = True

    def __init__(self, message: str = "Profile store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("PERSISTENCE_ERROR", message, details)


class ExternalServiceError(CampusError):
    """External service errors."""

    status_code = 502
    retryable = True

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)
