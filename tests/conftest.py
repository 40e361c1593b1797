"""Shared fixtures for the conversation tests.

Backends here are in-process fakes: they record the messages they were
given and answer (or fail) on cue, so no model server is needed.
"""

import asyncio
from typing import Any, Optional

import pytest
import pytest_asyncio

from api.features.conversation.context import ContextBuilder
from api.features.conversation.gateway import InferenceBackend, InferenceGateway
from api.features.conversation.service import ConversationManager
from api.features.conversation.store import (
    InMemoryConversationStore,
    SqlConversationStore,
)
from api.shared.entities.registry import BaseEntity
from infra.resources import DatabaseResource


class EchoBackend(InferenceBackend):
    """Answers 'echo: <last user message>', optionally after a delay."""

    name = "echo"

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.calls: list[list[dict[str, Any]]] = []

    async def complete(self, messages: list[dict[str, Any]]) -> str:
        self.calls.append(messages)
        if self.delay:
            await asyncio.sleep(self.delay)
        last_user = [m for m in messages if m["role"] == "user"][-1]
        return f"echo: {last_user['content']}"


class FailingBackend(InferenceBackend):
    """Raises the given exception on every call."""

    name = "failing"

    def __init__(self, error: Exception) -> None:
        self.error = error
        self.calls = 0

    async def complete(self, messages: list[dict[str, Any]]) -> str:
        self.calls += 1
        raise self.error


class GatedBackend(InferenceBackend):
    """Blocks until `release` is set, so tests can act mid-inference."""

    name = "gated"

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def complete(self, messages: list[dict[str, Any]]) -> str:
        self.started.set()
        await self.release.wait()
        return "late reply"


def make_manager(
    backend: Optional[InferenceBackend] = None,
    *,
    store=None,
    timeout_seconds: float = 2.0,
    max_turns: int = 6,
) -> ConversationManager:
    return ConversationManager(
        store or InMemoryConversationStore(),
        ContextBuilder(max_turns=max_turns, preamble="You are a test assistant."),
        InferenceGateway(backend or EchoBackend(), timeout_seconds=timeout_seconds),
    )


@pytest.fixture
def memory_store() -> InMemoryConversationStore:
    return InMemoryConversationStore()


@pytest_asyncio.fixture
async def sql_store(tmp_path):
    database = DatabaseResource(f"sqlite+aiosqlite:///{tmp_path / 'chat.db'}")
    await database.init()
    await database.create_schema(BaseEntity)
    yield SqlConversationStore(database)
    await database.shutdown()


@pytest_asyncio.fixture(params=["memory", "sql"])
async def store(request, tmp_path):
    """Each store contract test runs against both implementations."""
    if request.param == "memory":
        yield InMemoryConversationStore()
        return
    database = DatabaseResource(f"sqlite+aiosqlite:///{tmp_path / 'chat.db'}")
    await database.init()
    await database.create_schema(BaseEntity)
    yield SqlConversationStore(database)
    await database.shutdown()
