"""Shared exceptions for the MediTrack API."""
from typing import Any, Dict, Optional


class MediTrackException(Exception):
    """Base exception for MediTrack API."""

    def __init__(
        self,
        message: str,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(MediTrackException):
    """Raised when input validation fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "INVALID_INPUT", details)


class NotFoundError(MediTrackException):
    """Raised when a resource is not found."""

    def __init__(self, resource: str, identifier: str):
        message = f"{resource} with identifier '{identifier}' not found"
        super().__init__(
            message, "NOT_FOUND", {"resource": resource, "identifier": identifier}
        )


class ConflictError(MediTrackException):
    """Raised when concurrent writers collide on the same record."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFLICT", details)


class ExternalServiceError(MediTrackException):
    """Raised when external service calls fail."""

    def __init__(
        self, service: str, message: str, details: Optional[Dict[str, Any]] = None
    ):
        full_message = f"{service} service error: {message}"
        super().__init__(full_message, "EXTERNAL_SERVICE_ERROR", details)
