"""Conversation manager: multi-turn chat with the local medical model.

A chat exchange appends the user's turn, derives the bounded context,
awaits one inference call and appends the assistant's turn. Exchanges on
the same conversation run one at a time, so stored history alternates
user/assistant. A failed inference leaves the user's turn in place and
adds nothing else.
"""
from __future__ import annotations

import uuid
from typing import Callable, List, Optional

import structlog

from api.features.conversation.context import ContextBuilder
from api.features.conversation.exceptions import (
    ConversationClearedError,
    InvalidInputError,
)
from api.features.conversation.gateway import InferenceGateway
from api.features.conversation.models import ChatResult, ConversationSummary, Turn
from api.features.conversation.store import ConversationStore

logger = structlog.get_logger("meditrack.conversation")

MAX_CONVERSATION_ID_LENGTH = 128


def new_conversation_id() -> str:
    return uuid.uuid4().hex


class ConversationManager:
    """Orchestrates store, context builder and inference gateway."""

    def __init__(
        self,
        store: ConversationStore,
        context_builder: ContextBuilder,
        gateway: InferenceGateway,
        *,
        max_message_chars: int = 4000,
        id_factory: Callable[[], str] = new_conversation_id,
    ):
        self.store = store
        self.context_builder = context_builder
        self.gateway = gateway
        self.max_message_chars = max_message_chars
        self.id_factory = id_factory

    def _validate_message(self, message: Optional[str]) -> str:
        text = (message or "").strip()
        if not text:
            raise InvalidInputError("Message is required", field="message")
        if len(text) > self.max_message_chars:
            raise InvalidInputError(
                f"Message exceeds {self.max_message_chars} characters", field="message"
            )
        return text

    @staticmethod
    def normalize_conversation_id(conversation_id: Optional[str]) -> str:
        """Trimmed conversation id, or `InvalidInputError` when unusable."""
        value = (conversation_id or "").strip()
        if not value:
            raise InvalidInputError(
                "Conversation ID is required", field="conversation_id"
            )
        if len(value) > MAX_CONVERSATION_ID_LENGTH:
            raise InvalidInputError(
                f"Conversation ID exceeds {MAX_CONVERSATION_ID_LENGTH} characters",
                field="conversation_id",
            )
        return value

    async def chat_message(
        self, owner_id: str, conversation_id: Optional[str], message: str
    ) -> ChatResult:
        if conversation_id is None or not conversation_id.strip():
            conversation_id = self.id_factory()
        conversation_id = self.normalize_conversation_id(conversation_id)
        text = self._validate_message(message)

        log = logger.bind(conversation_id=conversation_id, owner_id=owner_id)
        async with self.store.exchange(conversation_id, owner_id):
            conversation = await self.store.append(
                conversation_id, owner_id, Turn.user(text)
            )
            context = self.context_builder.build(conversation.turns)
            # Failures propagate; the user's turn stays recorded.
            reply = await self.gateway.infer(context, text)
            try:
                await self.store.append(
                    conversation_id,
                    owner_id,
                    Turn.assistant(reply.content),
                    expected_epoch=conversation.epoch,
                )
            except ConversationClearedError:
                log.info("conversation.exchange.cleared_midway")
            else:
                log.info(
                    "conversation.exchange.completed",
                    latency_ms=reply.latency_ms,
                    backend=reply.backend,
                )

        return ChatResult(conversation_id=conversation_id, reply=reply)

    async def get_conversation(self, owner_id: str, conversation_id: str) -> List[Turn]:
        conversation_id = self.normalize_conversation_id(conversation_id)
        return await self.store.list(conversation_id, owner_id)

    async def clear_conversation(self, owner_id: str, conversation_id: str) -> None:
        conversation_id = self.normalize_conversation_id(conversation_id)
        await self.store.clear(conversation_id, owner_id)

    async def list_conversations(
        self, owner_id: str, *, limit: int = 50
    ) -> List[ConversationSummary]:
        return await self.store.list_conversations(owner_id, limit=limit)
