"""Domain models for the Conversation feature."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from api.shared.dtos import utcnow


class TurnRole(str, Enum):
    """Who said a turn."""

    USER = "user"
    ASSISTANT = "assistant"


class Turn(BaseModel):
    """One message in a conversation. Immutable once created."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    role: TurnRole = Field(description="Message role: user or assistant")
    content: str = Field(description="Message content")
    timestamp: datetime = Field(default_factory=utcnow)

    @classmethod
    def user(cls, content: str) -> "Turn":
        return cls(role=TurnRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "Turn":
        return cls(role=TurnRole.ASSISTANT, content=content)


class Conversation(BaseModel):
    """Snapshot of a conversation and its ordered turns."""

    id: str = Field(description="Conversation identifier")
    owner_id: str = Field(description="Owning user identifier")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    epoch: int = Field(default=0, description="Incremented by every clear")
    turns: List[Turn] = Field(default_factory=list)

    def snapshot(self) -> "Conversation":
        """Copy safe to hand out of the store; turns are immutable."""
        return self.model_copy(update={"turns": list(self.turns)})

    def summary(self) -> "ConversationSummary":
        return ConversationSummary(
            id=self.id,
            created_at=self.created_at,
            updated_at=self.updated_at,
            turn_count=len(self.turns),
        )


class ConversationSummary(BaseModel):
    id: str
    created_at: datetime
    updated_at: datetime
    turn_count: int = 0


class BoundedContext(BaseModel):
    """Window of recent turns sent to inference. Derived, never stored."""

    model_config = ConfigDict(frozen=True)

    preamble: Optional[str] = None
    turns: Tuple[Turn, ...] = ()
    dropped: int = Field(default=0, description="Turns cut from the front")

    @property
    def truncated(self) -> bool:
        return self.dropped > 0

    def as_messages(self) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = []
        if self.preamble:
            messages.append({"role": "system", "content": self.preamble})
        messages.extend(
            {"role": turn.role.value, "content": turn.content} for turn in self.turns
        )
        return messages


class NavigationAction(BaseModel):
    """Client-side navigation suggested alongside a reply."""

    model_config = ConfigDict(frozen=True)

    type: Literal["navigate"] = "navigate"
    target: str = Field(description="Page to open, e.g. 'prescriptions'")


class Reply(BaseModel):
    """Normalized answer from the inference backend."""

    content: str
    latency_ms: int
    backend: str
    navigation_action: Optional[NavigationAction] = None


class ChatResult(BaseModel):
    conversation_id: str
    reply: Reply
