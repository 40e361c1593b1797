"""Tests for the inference gateway and its backends.

The local model is simulated with httpx's MockTransport, so no model
server needs to be running.
"""

import asyncio
import json

import httpx
import pytest

from api.features.conversation.exceptions import (
    InferenceFailureError,
    InvalidInputError,
)
from api.features.conversation.gateway import (
    InferenceGateway,
    LocalModelBackend,
    RuleBasedBackend,
)
from api.features.conversation.models import BoundedContext, NavigationAction, Turn
from api.features.conversation.prompts import (
    COVID_TREATMENT,
    DEFAULT_RESPONSE,
    FAREWELL_RESPONSE,
    GREETING_RESPONSE,
    NAVIGATION_ANSWERS,
    match_navigation,
)

from conftest import EchoBackend, FailingBackend

LLM_URL = "http://llm.test/api/chat"


def _backend(handler) -> LocalModelBackend:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LocalModelBackend(LLM_URL, "medllama", client=client)


def _context(*turns: Turn, preamble: str = "sys") -> BoundedContext:
    return BoundedContext(preamble=preamble, turns=turns)


class TestLocalModelBackend:
    @pytest.mark.asyncio
    async def test_posts_ollama_chat_payload(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"message": {"content": "ok"}})

        backend = _backend(handler)
        messages = [{"role": "user", "content": "hello"}]

        assert await backend.complete(messages) == "ok"
        assert seen["url"] == LLM_URL
        assert seen["body"]["model"] == "medllama"
        assert seen["body"]["stream"] is False
        assert seen["body"]["messages"] == messages
        assert seen["body"]["options"] == {
            "temperature": 0.7,
            "top_p": 0.9,
            "max_tokens": 500,
        }

    @pytest.mark.parametrize(
        "payload",
        [
            {"message": {"role": "assistant", "content": "answer"}},
            {"choices": [{"message": {"content": "answer"}}]},
            {"response": "answer"},
        ],
    )
    def test_extracts_text_from_known_shapes(self, payload) -> None:
        assert LocalModelBackend.extract_text(payload) == "answer"

    def test_unknown_shape_yields_none(self) -> None:
        assert LocalModelBackend.extract_text({"output": "answer"}) is None
        assert LocalModelBackend.extract_text(["answer"]) is None

    @pytest.mark.parametrize(
        "payload",
        [
            {"choices": [{"message": "answer"}]},
            {"choices": [{"message": None}]},
            {"choices": ["answer"]},
            {"message": "answer"},
        ],
    )
    def test_malformed_shapes_yield_none(self, payload) -> None:
        assert LocalModelBackend.extract_text(payload) is None

    @pytest.mark.asyncio
    async def test_malformed_choices_is_invalid_response(self) -> None:
        gateway = InferenceGateway(
            _backend(
                lambda request: httpx.Response(
                    200, json={"choices": [{"message": "not an object"}]}
                )
            ),
            timeout_seconds=1,
        )

        with pytest.raises(InferenceFailureError) as exc_info:
            await gateway.infer(_context(), "hello")

        assert exc_info.value.reason == InferenceFailureError.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_unknown_shape_is_invalid_response(self) -> None:
        backend = _backend(lambda request: httpx.Response(200, json={"foo": 1}))

        with pytest.raises(InferenceFailureError) as exc_info:
            await backend.complete([{"role": "user", "content": "hi"}])

        assert exc_info.value.reason == InferenceFailureError.INVALID_RESPONSE


class TestRuleBasedBackend:
    @pytest.mark.asyncio
    async def test_answers_from_last_user_message(self) -> None:
        backend = RuleBasedBackend()
        messages = [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "hello"},
            {"role": "assistant", "content": "hi"},
            {"role": "user", "content": "How do I interpret elevated troponin?"},
        ]

        reply = await backend.complete(messages)

        assert "troponin" in reply.lower()

    @pytest.mark.asyncio
    async def test_falls_back_to_default_answer(self) -> None:
        reply = await RuleBasedBackend().complete(
            [{"role": "user", "content": "zzz"}]
        )

        assert reply == DEFAULT_RESPONSE

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "message",
        ["Any sushi places nearby?", "I flew in from Delhi yesterday", "this"],
    )
    async def test_greeting_needs_a_whole_word(self, message) -> None:
        reply = await RuleBasedBackend().complete([{"role": "user", "content": message}])

        assert reply == DEFAULT_RESPONSE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message", ["Hi", "hi there", "Hey, doctor here"])
    async def test_greets_back(self, message) -> None:
        reply = await RuleBasedBackend().complete([{"role": "user", "content": message}])

        assert reply == GREETING_RESPONSE

    @pytest.mark.asyncio
    async def test_says_goodbye(self) -> None:
        reply = await RuleBasedBackend().complete(
            [{"role": "user", "content": "Thanks, bye"}]
        )

        assert reply == FAREWELL_RESPONSE

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "message, expected",
        [
            ("What are the side effects of amoxicillin?", "amoxicillin"),
            ("How do you diagnose pneumonia?", "chest x-ray"),
            ("What is the normal blood glucose range?", "70-99 mg/dl"),
            ("What is a normal heart rate?", "60 to 100"),
            ("Normal heart rate for children?", "pediatrician"),
            ("What are the symptoms of COVID-19?", "loss of taste"),
            ("I have a bad migraine", "triptans"),
            ("Patient has a fever since Monday", "antipyretics"),
            ("What if a patient wants to stop taking the pills?", "adherence"),
        ],
    )
    async def test_clinical_rules(self, message, expected) -> None:
        reply = await RuleBasedBackend().complete([{"role": "user", "content": message}])

        assert expected in reply.lower()

    @pytest.mark.asyncio
    async def test_follow_up_uses_previous_turn(self) -> None:
        backend = RuleBasedBackend()
        first = await backend.complete(
            [{"role": "user", "content": "What are the signs of COVID?"}]
        )

        reply = await backend.complete(
            [
                {"role": "system", "content": "sys"},
                {"role": "user", "content": "What are the signs of COVID?"},
                {"role": "assistant", "content": first},
                {"role": "user", "content": "And the treatment?"},
            ]
        )

        assert reply == COVID_TREATMENT


class TestNavigation:
    @pytest.mark.parametrize(
        "message, target",
        [
            ("How do I find the dashboard?", "dashboard"),
            ("Take me to all patients", "patients"),
            ("How can I find patient details?", "patientDetails"),
            ("Go to prescriptions", "prescriptions"),
            ("Show me the lab reports", "labReports"),
            ("How do I find the blood pressure trend?", "vitalsAnalytics"),
            ("Open my appointments", "appointments"),
        ],
    )
    def test_detects_navigation_intent(self, message, target) -> None:
        assert match_navigation(message) == target

    @pytest.mark.parametrize(
        "message",
        ["What is the normal heart rate?", "Show me", "How do I prescribe amoxicillin?"],
    )
    def test_ignores_non_navigation_messages(self, message) -> None:
        assert match_navigation(message) is None

    @pytest.mark.asyncio
    async def test_gateway_reply_carries_navigation_action(self) -> None:
        gateway = InferenceGateway(RuleBasedBackend(), timeout_seconds=1)

        reply = await gateway.infer(
            _context(Turn.user("Take me to the lab reports")),
            "Take me to the lab reports",
        )

        assert reply.navigation_action == NavigationAction(target="labReports")
        assert reply.content == NAVIGATION_ANSWERS["labReports"]

    @pytest.mark.asyncio
    async def test_plain_answers_have_no_navigation_action(self) -> None:
        gateway = InferenceGateway(RuleBasedBackend(), timeout_seconds=1)

        reply = await gateway.infer(_context(Turn.user("hello")), "hello")

        assert reply.navigation_action is None

    @pytest.mark.asyncio
    async def test_model_backend_never_navigates(self) -> None:
        gateway = InferenceGateway(EchoBackend(), timeout_seconds=1)

        reply = await gateway.infer(
            _context(Turn.user("Take me to the dashboard")), "Take me to the dashboard"
        )

        assert reply.navigation_action is None


class TestInferenceGateway:
    @pytest.mark.asyncio
    async def test_success_returns_reply_with_latency(self) -> None:
        gateway = InferenceGateway(EchoBackend(), timeout_seconds=1)

        reply = await gateway.infer(_context(Turn.user("hello")), "hello")

        assert reply.content == "echo: hello"
        assert reply.latency_ms >= 0
        assert reply.backend == "echo"

    @pytest.mark.asyncio
    async def test_does_not_repeat_message_already_in_context(self) -> None:
        backend = EchoBackend()
        gateway = InferenceGateway(backend, timeout_seconds=1)

        await gateway.infer(
            _context(Turn.user("earlier"), Turn.assistant("ok"), Turn.user("now")),
            "now",
        )

        assert backend.calls[0] == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "earlier"},
            {"role": "assistant", "content": "ok"},
            {"role": "user", "content": "now"},
        ]

    @pytest.mark.asyncio
    async def test_appends_message_missing_from_context(self) -> None:
        backend = EchoBackend()
        gateway = InferenceGateway(backend, timeout_seconds=1)

        await gateway.infer(_context(preamble=None), "first question")

        assert backend.calls[0] == [{"role": "user", "content": "first question"}]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message", ["", "   ", "\n\t"])
    async def test_blank_message_is_invalid_input(self, message) -> None:
        backend = EchoBackend()
        gateway = InferenceGateway(backend, timeout_seconds=1)

        with pytest.raises(InvalidInputError):
            await gateway.infer(_context(), message)

        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_slow_backend_times_out(self) -> None:
        gateway = InferenceGateway(EchoBackend(delay=1.0), timeout_seconds=0.05)

        with pytest.raises(InferenceFailureError) as exc_info:
            await gateway.infer(_context(), "hello")

        assert exc_info.value.reason == InferenceFailureError.TIMEOUT

    @pytest.mark.asyncio
    async def test_http_timeout_is_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("model too slow", request=request)

        gateway = InferenceGateway(_backend(handler), timeout_seconds=1)

        with pytest.raises(InferenceFailureError) as exc_info:
            await gateway.infer(_context(), "hello")

        assert exc_info.value.reason == InferenceFailureError.TIMEOUT

    @pytest.mark.asyncio
    async def test_slow_http_backend_is_cut_off(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1.0)
            return httpx.Response(200, json={"response": "too late"})

        gateway = InferenceGateway(_backend(handler), timeout_seconds=0.05)

        with pytest.raises(InferenceFailureError) as exc_info:
            await gateway.infer(_context(), "hello")

        assert exc_info.value.reason == InferenceFailureError.TIMEOUT

    @pytest.mark.asyncio
    async def test_http_error_status_is_backend_error(self) -> None:
        gateway = InferenceGateway(
            _backend(lambda request: httpx.Response(500, json={"error": "boom"})),
            timeout_seconds=1,
        )

        with pytest.raises(InferenceFailureError) as exc_info:
            await gateway.infer(_context(), "hello")

        assert exc_info.value.reason == InferenceFailureError.BACKEND_ERROR
        assert exc_info.value.details["status_code"] == 500

    @pytest.mark.asyncio
    async def test_connection_error_is_unavailable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        gateway = InferenceGateway(_backend(handler), timeout_seconds=1)

        with pytest.raises(InferenceFailureError) as exc_info:
            await gateway.infer(_context(), "hello")

        assert exc_info.value.reason == InferenceFailureError.UNAVAILABLE

    @pytest.mark.asyncio
    async def test_empty_reply_is_invalid_response(self) -> None:
        gateway = InferenceGateway(
            _backend(lambda request: httpx.Response(200, json={"response": "   "})),
            timeout_seconds=1,
        )

        with pytest.raises(InferenceFailureError) as exc_info:
            await gateway.infer(_context(), "hello")

        assert exc_info.value.reason == InferenceFailureError.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_no_retry_after_failure(self) -> None:
        backend = FailingBackend(
            InferenceFailureError(InferenceFailureError.BACKEND_ERROR)
        )
        gateway = InferenceGateway(backend, timeout_seconds=1)

        with pytest.raises(InferenceFailureError):
            await gateway.infer(_context(), "hello")

        assert backend.calls == 1

    def test_rejects_non_positive_timeout(self) -> None:
        with pytest.raises(ValueError):
            InferenceGateway(EchoBackend(), timeout_seconds=0)
