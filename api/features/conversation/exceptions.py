"""Exceptions for the Conversation feature."""
from typing import Any, Dict, Optional

from api.shared.exceptions import (
    ConflictError,
    ExternalServiceError,
    MediTrackException,
    NotFoundError,
    ValidationError,
)


class ConversationException(MediTrackException):
    """Base exception for conversation operations."""

    pass


class InvalidInputError(ValidationError):
    """Raised when a chat request is malformed (empty message, bad id)."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, {"field": field} if field else None)


class ConversationNotFoundError(NotFoundError):
    """Raised when a conversation is absent or belongs to another owner.

    Both cases produce the same error so callers cannot probe for ids owned
    by somebody else.
    """

    def __init__(self, conversation_id: str):
        super().__init__("Conversation", conversation_id)
        self.error_code = "CONVERSATION_NOT_FOUND"


class InferenceFailureError(ExternalServiceError):
    """Raised when the local medical model times out, errors or replies garbage."""

    TIMEOUT = "timeout"
    BACKEND_ERROR = "backend_error"
    UNAVAILABLE = "unavailable"
    INVALID_RESPONSE = "invalid_response"

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        self.reason = reason
        error_details: Dict[str, Any] = {"reason": reason}
        if details:
            error_details.update(details)
        super().__init__("Inference", reason, error_details)
        self.error_code = "INFERENCE_FAILURE"


class ConversationClearedError(ConversationException):
    """Raised when an epoch-guarded append finds the conversation was cleared."""

    def __init__(self, conversation_id: str, expected_epoch: int, epoch: int):
        super().__init__(
            f"Conversation '{conversation_id}' was cleared during the exchange",
            "CONVERSATION_CLEARED",
            {"expected_epoch": expected_epoch, "epoch": epoch},
        )


class ConcurrencyFaultError(ConflictError):
    """Raised when the store detects writers that its locking should have serialized."""

    def __init__(self, conversation_id: str, details: Optional[Dict[str, Any]] = None):
        error_details: Dict[str, Any] = {"conversation_id": conversation_id}
        if details:
            error_details.update(details)
        super().__init__(
            f"Concurrent write detected on conversation '{conversation_id}'",
            error_details,
        )
        self.error_code = "CONCURRENCY_FAULT"
