"""Conversation repository: SQL queries behind the SQL conversation store."""
from typing import List, Optional, Tuple

from sqlalchemy import delete, func, select

from api.features.conversation.entities.conversation import (
    Conversation,
    ConversationTurn,
)
from api.shared.base import BaseRepository


class ConversationRepository(BaseRepository[Conversation]):
    """Repository for conversations and their turns."""

    model = Conversation

    async def get_for_owner(
        self, owner_id: str, external_id: str, *, for_update: bool = False
    ) -> Optional[Conversation]:
        """Get an owner's conversation by its client-facing id."""
        stmt = select(Conversation).where(
            Conversation.owner_id == owner_id,
            Conversation.external_id == external_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_turns(self, conversation: Conversation) -> List[ConversationTurn]:
        """Turns of a conversation in insertion order."""
        stmt = (
            select(ConversationTurn)
            .where(ConversationTurn.conversation_id == conversation.id)
            .order_by(ConversationTurn.position)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def add_turn(
        self, conversation: Conversation, *, role: str, content: str, created_at
    ) -> ConversationTurn:
        turn = ConversationTurn(
            conversation_id=conversation.id,
            position=conversation.next_position,
            role=role,
            content=content,
            created_at=created_at,
        )
        self.session.add(turn)
        conversation.next_position += 1
        conversation.updated_at = created_at
        await self.session.flush()
        return turn

    async def delete_turns(self, conversation: Conversation) -> int:
        stmt = delete(ConversationTurn).where(
            ConversationTurn.conversation_id == conversation.id
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def list_for_owner(
        self, owner_id: str, *, limit: int = 50
    ) -> List[Tuple[Conversation, int]]:
        """Owner's conversations with turn counts, most recently updated first."""
        turn_count = (
            select(func.count(ConversationTurn.id))
            .where(ConversationTurn.conversation_id == Conversation.id)
            .correlate(Conversation)
            .scalar_subquery()
        )
        stmt = (
            select(Conversation, turn_count)
            .where(Conversation.owner_id == owner_id)
            .order_by(Conversation.updated_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [(row[0], int(row[1] or 0)) for row in result.all()]
