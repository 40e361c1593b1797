"""Conversation stores: ordered turn history per conversation id.

Every mutation runs under a per-conversation lock from a `KeyedLocks`
arena, so appends to one conversation never interleave while different
conversations never wait on each other. A second arena, exposed through
`exchange()`, lets the manager serialize whole chat exchanges (user turn,
inference, assistant turn) without making reads or clears wait for an
in-flight inference call.

Conversations are keyed by (owner, conversation id): two owners using the
same id get separate conversations, and one owner can never observe
another's. Clearing keeps the conversation shell, empties its turns and
bumps its epoch.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional, Tuple

import structlog
from sqlalchemy.exc import IntegrityError

from api.features.conversation.entities.conversation import (
    Conversation as ConversationEntity,
    ConversationTurn,
)
from api.features.conversation.exceptions import (
    ConcurrencyFaultError,
    ConversationClearedError,
    ConversationNotFoundError,
)
from api.features.conversation.models import (
    Conversation,
    ConversationSummary,
    Turn,
    TurnRole,
)
from api.features.conversation.repositories.conversation_repository import (
    ConversationRepository,
)
from api.shared.dtos import utcnow
from api.shared.locks import KeyedLocks
from infra.resources import DatabaseResource

logger = structlog.get_logger("meditrack.conversation.store")



ConversationKey = Tuple[str, str]


def _key(conversation_id: str, owner_id: str) -> ConversationKey:
    return owner_id, conversation_id


class ConversationStore(ABC):
    """Contract shared by the in-memory and SQL stores."""

    def __init__(self) -> None:
        self._locks = KeyedLocks()
        self._exchanges = KeyedLocks()

    @asynccontextmanager
    async def exchange(
        self, conversation_id: str, owner_id: str
    ) -> AsyncIterator[None]:
        """Serialize chat exchanges on one owner's conversation."""
        async with self._exchanges.hold(_key(conversation_id, owner_id)):
            yield

    @abstractmethod
    async def get(self, conversation_id: str, owner_id: str) -> Conversation:
        ...

    @abstractmethod
    async def append(
        self,
        conversation_id: str,
        owner_id: str,
        turn: Turn,
        *,
        expected_epoch: Optional[int] = None,
    ) -> Conversation:
        ...

    @abstractmethod
    async def clear(self, conversation_id: str, owner_id: str) -> None:
        ...

    @abstractmethod
    async def list(self, conversation_id: str, owner_id: str) -> List[Turn]:
        ...

    @abstractmethod
    async def list_conversations(
        self, owner_id: str, *, limit: int = 50
    ) -> List[ConversationSummary]:
        ...


class InMemoryConversationStore(ConversationStore):
    """Process-local store. Contents vanish with the process."""

    def __init__(self) -> None:
        super().__init__()
        self._conversations: Dict[ConversationKey, Conversation] = {}

    def _owned(self, conversation_id: str, owner_id: str) -> Conversation:
        conversation = self._conversations.get(_key(conversation_id, owner_id))
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    async def get(self, conversation_id: str, owner_id: str) -> Conversation:
        async with self._locks.hold(_key(conversation_id, owner_id)):
            return self._owned(conversation_id, owner_id).snapshot()

    async def append(
        self,
        conversation_id: str,
        owner_id: str,
        turn: Turn,
        *,
        expected_epoch: Optional[int] = None,
    ) -> Conversation:
        key = _key(conversation_id, owner_id)
        async with self._locks.hold(key):
            now = utcnow()
            conversation = self._conversations.get(key)
            if conversation is None:
                conversation = Conversation(
                    id=conversation_id, owner_id=owner_id, created_at=now, updated_at=now
                )
                self._conversations[key] = conversation
                logger.info(
                    "conversation.created",
                    conversation_id=conversation_id,
                    owner_id=owner_id,
                )

            if expected_epoch is not None and conversation.epoch != expected_epoch:
                raise ConversationClearedError(
                    conversation_id, expected_epoch, conversation.epoch
                )

            conversation.turns.append(turn)
            conversation.updated_at = now
            return conversation.snapshot()

    async def clear(self, conversation_id: str, owner_id: str) -> None:
        async with self._locks.hold(_key(conversation_id, owner_id)):
            conversation = self._owned(conversation_id, owner_id)
            dropped = len(conversation.turns)
            conversation.turns = []
            conversation.epoch += 1
            conversation.updated_at = utcnow()
        logger.info(
            "conversation.cleared",
            conversation_id=conversation_id,
            owner_id=owner_id,
            dropped=dropped,
        )

    async def list(self, conversation_id: str, owner_id: str) -> List[Turn]:
        async with self._locks.hold(_key(conversation_id, owner_id)):
            return list(self._owned(conversation_id, owner_id).turns)

    async def list_conversations(
        self, owner_id: str, *, limit: int = 50
    ) -> List[ConversationSummary]:
        owned = [c for c in self._conversations.values() if c.owner_id == owner_id]
        owned.sort(key=lambda c: c.updated_at, reverse=True)
        return [c.summary() for c in owned[:limit]]


class SqlConversationStore(ConversationStore):
    """Store backed by SQLAlchemy async sessions, one transaction per operation.

    The per-key locks serialize writers inside this process only; several API
    processes sharing a database can still race on conversation creation,
    which surfaces as `ConcurrencyFaultError`.
    """

    def __init__(self, database: DatabaseResource) -> None:
        super().__init__()
        self.database = database

    @staticmethod
    def _turn(entity: ConversationTurn) -> Turn:
        return Turn(
            role=TurnRole(entity.role),
            content=entity.content,
            timestamp=entity.created_at,
        )

    @classmethod
    def _to_model(
        cls, entity: ConversationEntity, turns: List[ConversationTurn]
    ) -> Conversation:
        return Conversation(
            id=entity.external_id,
            owner_id=entity.owner_id,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            epoch=entity.epoch,
            turns=[cls._turn(t) for t in turns],
        )

    @staticmethod
    async def _owned(
        repository: ConversationRepository,
        conversation_id: str,
        owner_id: str,
        *,
        for_update: bool = False,
    ) -> ConversationEntity:
        entity = await repository.get_for_owner(
            owner_id, conversation_id, for_update=for_update
        )
        if entity is None:
            raise ConversationNotFoundError(conversation_id)
        return entity

    async def get(self, conversation_id: str, owner_id: str) -> Conversation:
        async with self._locks.hold(_key(conversation_id, owner_id)):
            async with self.database.get_session() as session:
                repository = ConversationRepository(session)
                entity = await self._owned(repository, conversation_id, owner_id)
                turns = await repository.list_turns(entity)
                return self._to_model(entity, turns)

    async def append(
        self,
        conversation_id: str,
        owner_id: str,
        turn: Turn,
        *,
        expected_epoch: Optional[int] = None,
    ) -> Conversation:
        async with self._locks.hold(_key(conversation_id, owner_id)):
            try:
                async with self.database.get_session() as session:
                    async with session.begin():
                        repository = ConversationRepository(session)
                        entity = await repository.get_for_owner(
                            owner_id, conversation_id, for_update=True
                        )
                        if entity is None:
                            entity = await self._create(
                                repository, conversation_id, owner_id, turn.timestamp
                            )

                        if expected_epoch is not None and entity.epoch != expected_epoch:
                            raise ConversationClearedError(
                                conversation_id, expected_epoch, entity.epoch
                            )

                        await repository.add_turn(
                            entity,
                            role=turn.role.value,
                            content=turn.content,
                            created_at=turn.timestamp,
                        )
                        turns = await repository.list_turns(entity)
                        conversation = self._to_model(entity, turns)
                    return conversation
            except IntegrityError as exc:
                logger.error(
                    "conversation.append.integrity_error",
                    conversation_id=conversation_id,
                    owner_id=owner_id,
                    error=str(exc.orig),
                )
                raise ConcurrencyFaultError(
                    conversation_id, {"error": str(exc.orig)}
                ) from exc

    @staticmethod
    async def _create(
        repository: ConversationRepository,
        conversation_id: str,
        owner_id: str,
        now: datetime,
    ) -> ConversationEntity:
        entity = await repository.create(
            ConversationEntity(
                owner_id=owner_id,
                external_id=conversation_id,
                epoch=0,
                next_position=0,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info(
            "conversation.created", conversation_id=conversation_id, owner_id=owner_id
        )
        return entity

    async def clear(self, conversation_id: str, owner_id: str) -> None:
        async with self._locks.hold(_key(conversation_id, owner_id)):
            async with self.database.get_session() as session:
                async with session.begin():
                    repository = ConversationRepository(session)
                    entity = await self._owned(
                        repository, conversation_id, owner_id, for_update=True
                    )
                    dropped = await repository.delete_turns(entity)
                    entity.epoch += 1
                    entity.updated_at = utcnow()
        logger.info(
            "conversation.cleared",
            conversation_id=conversation_id,
            owner_id=owner_id,
            dropped=dropped,
        )

    async def list(self, conversation_id: str, owner_id: str) -> List[Turn]:
        async with self._locks.hold(_key(conversation_id, owner_id)):
            async with self.database.get_session() as session:
                repository = ConversationRepository(session)
                entity = await self._owned(repository, conversation_id, owner_id)
                return [self._turn(t) for t in await repository.list_turns(entity)]

    async def list_conversations(
        self, owner_id: str, *, limit: int = 50
    ) -> List[ConversationSummary]:
        async with self.database.get_session() as session:
            repository = ConversationRepository(session)
            rows = await repository.list_for_owner(owner_id, limit=limit)
            return [
                ConversationSummary(
                    id=entity.external_id,
                    created_at=entity.created_at,
                    updated_at=entity.updated_at,
                    turn_count=count,
                )
                for entity, count in rows
            ]
