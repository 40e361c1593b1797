"""Conversation entities for the SQL-backed conversation store."""
from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from api.shared.entities.base import BaseEntity


class Conversation(BaseEntity):
    """Conversation shell: owner, clear epoch and the next turn position.

    `id` is a surrogate key. The identifier clients use is `external_id`,
    unique per owner, so two owners may hold conversations with the same id.
    """

    __table_args__ = (
        UniqueConstraint(
            "owner_id", "external_id", name="uq_conversation_owner_external"
        ),
    )
    # updated_at has an onupdate default; fetch it during flush
    __mapper_args__ = {"eager_defaults": True}

    owner_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    external_id: Mapped[str] = mapped_column(String(128), nullable=False)
    epoch: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    next_position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class ConversationTurn(BaseEntity):
    """Single user or assistant turn; `position` fixes insertion order."""

    __tablename__ = "conversation_turn"
    __table_args__ = (
        Index("ix_conversation_turn_position", "conversation_id", "position"),
    )
    __mapper_args__ = {"eager_defaults": True}

    conversation_id: Mapped[str] = mapped_column(
        ForeignKey("conversation.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
