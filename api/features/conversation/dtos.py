"""DTOs for the Conversation feature."""
from datetime import datetime
from typing import List, Optional

from pydantic import Field

from api.shared.dtos import BaseDTO


class ChatRequest(BaseDTO):
    """Send a message to the chatbot."""

    message: str = Field(description="Message text")
    conversation_id: Optional[str] = Field(
        default=None,
        max_length=128,
        description="Conversation to continue; a new one is started when omitted",
    )


class NavigationActionDTO(BaseDTO):
    """Page the client should open."""

    type: str = Field(description="Action type, always 'navigate'")
    target: str = Field(description="Page identifier, e.g. 'labReports'")


class ChatResponse(BaseDTO):
    """Assistant reply for a chat message."""

    conversation_id: str = Field(description="Conversation identifier")
    reply: str = Field(description="Assistant reply")
    latency_ms: int = Field(description="Inference latency in milliseconds")
    navigation_action: Optional[NavigationActionDTO] = Field(
        default=None, description="Navigation suggested by the assistant"
    )


class TurnDTO(BaseDTO):
    """Conversation turn DTO."""

    role: str = Field(description="Message role: user or assistant")
    content: str = Field(description="Message content")
    timestamp: datetime = Field(description="When the turn was recorded")


class TurnsResponse(BaseDTO):
    """Conversation history response."""

    conversation_id: str = Field(description="Conversation identifier")
    items: List[TurnDTO] = Field(description="Turns in chronological order")
    total: int = Field(description="Total turns returned")


class ConversationDTO(BaseDTO):
    """Conversation summary DTO."""

    id: str = Field(description="Conversation identifier")
    created_at: datetime
    updated_at: datetime
    turn_count: int = Field(description="Number of stored turns")


class ConversationListResponse(BaseDTO):
    """List conversations response."""

    items: List[ConversationDTO] = Field(description="Conversations")
    total: int = Field(description="Total conversations returned")
