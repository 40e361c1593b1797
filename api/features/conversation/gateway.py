"""Inference gateway: one bounded call to the local medical model per message.

The gateway validates the new message, assembles chat messages from the
bounded context, awaits the backend under a timeout and turns every
transport problem into `InferenceFailureError`. It never retries and never
persists anything.
"""
from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

import httpx
import structlog

from api.features.conversation.exceptions import (
    InferenceFailureError,
    InvalidInputError,
)
from api.features.conversation.models import (
    BoundedContext,
    NavigationAction,
    Reply,
    TurnRole,
)
from api.features.conversation.prompts import answer, match_navigation

logger = structlog.get_logger("meditrack.conversation.inference")

Messages = List[Dict[str, Any]]


class InferenceBackend(ABC):
    """Produces the assistant text for a list of chat messages."""

    name: str = "backend"

    @abstractmethod
    async def complete(self, messages: Messages) -> str:
        ...

    def navigation(self, messages: Messages) -> Optional[NavigationAction]:
        """Page the client should open for this request, if any."""
        return None


class LocalModelBackend(InferenceBackend):
    """Chat endpoint of a locally hosted model.

    Speaks the Ollama `/api/chat` request format. Replies are accepted in
    Ollama (`message.content`), OpenAI-compatible (`choices[0].message.content`,
    as served by LocalAI or LM Studio) or plain (`response`) shape.
    """

    name = "local"

    def __init__(
        self,
        url: str,
        model: str,
        *,
        timeout_seconds: float = 15.0,
        temperature: float = 0.7,
        top_p: float = 0.9,
        max_tokens: int = 500,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.options = {
            "temperature": temperature,
            "top_p": top_p,
            "max_tokens": max_tokens,
        }
        self._client = client

    def _payload(self, messages: Messages) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": self.options,
        }

    @staticmethod
    def extract_text(data: Any) -> Optional[str]:
        if not isinstance(data, dict):
            return None
        message = data.get("message")
        if isinstance(message, dict) and message.get("content"):
            return str(message["content"])
        choices = data.get("choices")
        if isinstance(choices, list) and choices:
            first = choices[0] if isinstance(choices[0], dict) else {}
            message = first.get("message")
            if isinstance(message, dict) and message.get("content"):
                return str(message["content"])
        if data.get("response"):
            return str(data["response"])
        return None

    async def _post(self, client: httpx.AsyncClient, messages: Messages) -> httpx.Response:
        response = await client.post(self.url, json=self._payload(messages))
        response.raise_for_status()
        return response

    async def complete(self, messages: Messages) -> str:
        if self._client is not None:
            response = await self._post(self._client, messages)
        else:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await self._post(client, messages)

        try:
            data = response.json()
        except ValueError as exc:
            raise InferenceFailureError(
                InferenceFailureError.INVALID_RESPONSE, {"error": "non-JSON body"}
            ) from exc
        text = self.extract_text(data)
        if text is None:
            raise InferenceFailureError(
                InferenceFailureError.INVALID_RESPONSE,
                {"keys": sorted(data.keys()) if isinstance(data, dict) else []},
            )
        return text


class RuleBasedBackend(InferenceBackend):
    """Offline responder answering from canned clinical snippets.

    Navigation requests ("take me to the dashboard") are answered with a
    pointer to the page and a navigation action for the client.
    """

    name = "rules"

    @staticmethod
    def _latest(messages: Messages) -> Tuple[str, Optional[str]]:
        """Last user message and the turn just before it."""
        turns = [m for m in messages if m["role"] != "system"]
        for index in range(len(turns) - 1, -1, -1):
            if turns[index]["role"] == TurnRole.USER.value:
                previous = turns[index - 1]["content"] if index > 0 else None
                return turns[index]["content"], previous
        return "", None

    async def complete(self, messages: Messages) -> str:
        message, previous = self._latest(messages)
        return answer(message, previous).content

    def navigation(self, messages: Messages) -> Optional[NavigationAction]:
        message, _ = self._latest(messages)
        target = match_navigation(message)
        return NavigationAction(target=target) if target else None


class InferenceGateway:
    """Adapts a conversation turn into a single bounded backend call."""

    def __init__(self, backend: InferenceBackend, timeout_seconds: float = 15.0):
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self.backend = backend
        self.timeout_seconds = timeout_seconds

    @staticmethod
    def build_messages(context: BoundedContext, new_user_message: str) -> Messages:
        messages = context.as_messages()
        last = context.turns[-1] if context.turns else None
        if (
            last is None
            or last.role != TurnRole.USER
            or last.content.strip() != new_user_message
        ):
            messages.append({"role": TurnRole.USER.value, "content": new_user_message})
        return messages

    async def infer(self, context: BoundedContext, new_user_message: str) -> Reply:
        text = (new_user_message or "").strip()
        if not text:
            raise InvalidInputError("Message is required", field="message")

        messages = self.build_messages(context, text)
        started = time.perf_counter()
        try:
            content = await asyncio.wait_for(
                self.backend.complete(messages), timeout=self.timeout_seconds
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise self._failure(InferenceFailureError.TIMEOUT, started) from exc
        except httpx.HTTPStatusError as exc:
            raise self._failure(
                InferenceFailureError.BACKEND_ERROR,
                started,
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise self._failure(
                InferenceFailureError.UNAVAILABLE, started, error=str(exc)
            ) from exc
        except InferenceFailureError as exc:
            logger.warning(
                "inference.failed",
                backend=self.backend.name,
                reason=exc.reason,
                latency_ms=self._elapsed_ms(started),
            )
            raise

        content = (content or "").strip()
        if not content:
            raise self._failure(InferenceFailureError.INVALID_RESPONSE, started)

        latency_ms = self._elapsed_ms(started)
        navigation_action = self.backend.navigation(messages)
        logger.info(
            "inference.completed",
            backend=self.backend.name,
            latency_ms=latency_ms,
            context_turns=len(context.turns),
            truncated=context.truncated,
            navigation=navigation_action.target if navigation_action else None,
        )
        return Reply(
            content=content,
            latency_ms=latency_ms,
            backend=self.backend.name,
            navigation_action=navigation_action,
        )

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.perf_counter() - started) * 1000)

    def _failure(self, reason: str, started: float, **details: Any) -> InferenceFailureError:
        latency_ms = self._elapsed_ms(started)
        logger.warning(
            "inference.failed",
            backend=self.backend.name,
            reason=reason,
            latency_ms=latency_ms,
            **details,
        )
        return InferenceFailureError(reason, {"latency_ms": latency_ms, **details})
