from __future__ import annotations

import asyncio
import dataclasses
import json
import re

import httpx
import pytest

from unillm.clients.adapters.gemini import GeminiClient
from unillm.clients.adapters.groq_llama import GroqLlamaClient
from unillm.clients.adapters.groq_qwen import GroqQwenClient
from unillm.clients.adapters.openai import OpenAIClient
from unillm.config import AdapterConfig
from unillm.errors import (
    LLMAPIError,
    LLMClientAbortError,
    LLMConfigurationError,
    LLMInvalidRequestError,
    LLMInvalidResponseError,
    LLMTimeoutError,
    LLMTransportError,
)
from unillm.types import CompletionOptions, Message


def run_async(coro):
    return asyncio.run(coro)


def chat_body(text: str) -> dict:
    return {
        "model": "stub-model",
        "choices": [{"message": {"role": "assistant", "content": text}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 5, "completion_tokens": 7, "total_tokens": 12},
    }


def gemini_body(text: str) -> dict:
    return {
        "candidates": [{"content": {"role": "model", "parts": [{"text": text}]}, "finishReason": "STOP"}],
        "usageMetadata": {"promptTokenCount": 5, "candidatesTokenCount": 7, "totalTokenCount": 12},
    }


def chat_stream(parts: list[str]) -> bytes:
    lines = [
        "data: " + json.dumps({"choices": [{"index": 0, "delta": {"content": p}}]}) + "\n\n"
        for p in parts
    ]
    return ("".join(lines) + "data: [DONE]\n\n").encode("utf-8")


def gemini_stream(parts: list[str]) -> bytes:
    lines = [
        "data: " + json.dumps({"candidates": [{"content": {"parts": [{"text": p}]}}]}) + "\r\n\r\n"
        for p in parts
    ]
    return "".join(lines).encode("utf-8")


PROVIDERS = {
    "openai": (OpenAIClient, chat_body, chat_stream),
    "gemini": (GeminiClient, gemini_body, gemini_stream),
    "groq-llama": (GroqLlamaClient, chat_body, chat_stream),
    "groq-qwen": (GroqQwenClient, chat_body, chat_stream),
}


class Recorder:
    """Stub transport handler that replays canned responses and records requests."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses[min(len(self.requests) - 1, len(self.responses) - 1)]
        if callable(item):
            return await item(request)
        # Fresh copy per call; a Response object is consumed once read.
        return httpx.Response(item.status_code, headers=item.headers, content=item.content)

    @property
    def calls(self) -> int:
        return len(self.requests)


def make_llm(provider: str, handler, observers=None, **overrides):
    cls = PROVIDERS[provider][0]
    config = AdapterConfig.for_provider(
        provider,
        **{"api_key": "test-key", "backoff_base_s": 0.0, **overrides},
    )
    return cls(config, transport=httpx.MockTransport(handler), observers=observers)


def ok(provider: str, text: str) -> httpx.Response:
    return httpx.Response(200, json=PROVIDERS[provider][1](text))


@pytest.fixture(params=sorted(PROVIDERS))
def provider(request) -> str:
    return request.param


def test_malformed_json_is_retried_until_valid(provider):
    recorder = Recorder([ok(provider, "this is not json"), ok(provider, '{"value": 1}')])
    llm = make_llm(provider, recorder)

    result = run_async(
        llm.complete("Return JSON.", CompletionOptions(user_message="hi", json_mode=True))
    )

    assert recorder.calls == 2
    assert result.metadata.validation is not None
    assert result.metadata.validation.is_valid is True
    assert result.metadata.validation.parsed == {"value": 1}
    assert result.metadata.attempts == 2
    assert result.metadata.provider == provider


def test_rate_limit_is_retried(provider):
    recorder = Recorder([httpx.Response(429, text="slow down"), ok(provider, "hello")])
    llm = make_llm(provider, recorder)

    result = run_async(llm.complete("Be brief.", CompletionOptions(user_message="hi")))

    assert recorder.calls == 2
    assert result.text == "hello"
    assert result.metadata.validation is None


def test_bad_request_is_not_retried(provider):
    recorder = Recorder([httpx.Response(400, text="bad input"), ok(provider, "unused")])
    llm = make_llm(provider, recorder)

    with pytest.raises(LLMAPIError) as exc_info:
        run_async(llm.complete("Be brief.", CompletionOptions(user_message="hi")))

    assert recorder.calls == 1
    assert exc_info.value.status_code == 400
    assert exc_info.value.retryable is False
    assert str(exc_info.value) == f"{provider} API error: 400 - bad input"


def test_server_errors_exhaust_retry_budget(provider):
    recorder = Recorder([httpx.Response(503, text="unavailable")])
    llm = make_llm(provider, recorder)

    with pytest.raises(LLMAPIError) as exc_info:
        run_async(llm.complete("Be brief.", CompletionOptions(user_message="hi")))

    assert recorder.calls == 3
    assert exc_info.value.retryable is True


@pytest.fixture
def sleeps(monkeypatch) -> list[float]:
    recorded: list[float] = []
    real_sleep = asyncio.sleep

    async def fake_sleep(delay):
        recorded.append(delay)
        await real_sleep(0)

    monkeypatch.setattr("unillm.llm.asyncio.sleep", fake_sleep)
    return recorded


def test_api_error_backoff_doubles_per_attempt(provider, sleeps):
    recorder = Recorder(
        [
            httpx.Response(503, text="unavailable"),
            httpx.Response(503, text="unavailable"),
            ok(provider, "hello"),
        ]
    )
    llm = make_llm(provider, recorder, backoff_base_s=0.5)

    result = run_async(llm.complete("Be brief.", CompletionOptions(user_message="hi")))

    assert result.text == "hello"
    assert recorder.calls == 3
    assert sleeps == [0.5, 1.0]


def test_validation_retry_backs_off(provider, sleeps):
    recorder = Recorder([ok(provider, "not json"), ok(provider, '{"v": 1}')])
    llm = make_llm(provider, recorder, backoff_base_s=0.5)

    result = run_async(
        llm.complete("Return JSON.", CompletionOptions(user_message="hi", json_mode=True))
    )

    assert result.metadata.validation.is_valid is True
    assert result.metadata.attempts == 2
    assert sleeps == [0.5]


def test_per_call_max_retries_overrides_config(provider):
    recorder = Recorder([httpx.Response(500, text="boom")])
    llm = make_llm(provider, recorder)

    with pytest.raises(LLMAPIError):
        run_async(llm.complete("x", CompletionOptions(user_message="hi", max_retries=0)))

    assert recorder.calls == 1


def test_invalid_output_is_returned_after_budget(provider):
    recorder = Recorder([ok(provider, "I'm sorry, I cannot help with that.")])
    llm = make_llm(provider, recorder)

    result = run_async(
        llm.complete("Return JSON.", CompletionOptions(user_message="hi", json_mode=True))
    )

    assert recorder.calls == 3
    assert result.metadata.attempts == 3
    assert result.metadata.validation is not None
    assert result.metadata.validation.is_valid is False
    assert result.is_valid is False


def test_validation_retry_can_be_disabled(provider):
    recorder = Recorder([ok(provider, "nope")])
    llm = make_llm(provider, recorder)

    result = run_async(
        llm.complete(
            "Return JSON.",
            CompletionOptions(user_message="hi", json_mode=True, retry_on_validation_failure=False),
        )
    )

    assert recorder.calls == 1
    assert result.metadata.validation.is_valid is False


def test_missing_api_key_or_model_is_a_configuration_error(provider):
    recorder = Recorder([ok(provider, "x")])

    with pytest.raises(LLMConfigurationError):
        make_llm(provider, recorder, api_key="")
    with pytest.raises(LLMConfigurationError):
        make_llm(provider, recorder, default_model="")


def test_invalid_options_fail_before_network(provider):
    recorder = Recorder([ok(provider, "x")])
    llm = make_llm(provider, recorder)

    with pytest.raises(LLMInvalidRequestError):
        run_async(llm.complete("x", CompletionOptions(max_tokens=0)))
    with pytest.raises(LLMInvalidRequestError):
        run_async(llm.complete("x", CompletionOptions(messages=[Message(role="tool", content="x")])))  # type: ignore[arg-type]

    assert recorder.calls == 0


def test_health_check_reports_healthy(provider):
    recorder = Recorder([ok(provider, '{"status": "healthy"}')])
    llm = make_llm(provider, recorder)

    status = run_async(llm.health_check())

    assert status.healthy is True
    assert status.provider == provider
    assert status.error is None
    assert recorder.calls == 1


def test_health_check_never_raises(provider):
    recorder = Recorder([httpx.Response(401, text="invalid api key")])
    llm = make_llm(provider, recorder)

    status = run_async(llm.health_check())

    assert status.healthy is False
    assert "401" in (status.error or "")
    assert recorder.calls == 1


def test_deadline_raises_timeout(provider):
    async def slow(request):
        await asyncio.sleep(1.0)
        return ok(provider, "late")

    recorder = Recorder([slow])
    llm = make_llm(provider, recorder)

    with pytest.raises(LLMTimeoutError):
        run_async(llm.complete("x", CompletionOptions(user_message="hi", timeout_s=0.05)))

    assert recorder.calls == 1


def test_caller_signal_raises_client_abort(provider):
    async def slow(request):
        await asyncio.sleep(1.0)
        return ok(provider, "late")

    recorder = Recorder([slow])
    llm = make_llm(provider, recorder)

    async def scenario():
        signal = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, signal.set)
        await llm.complete("x", CompletionOptions(user_message="hi", timeout_s=5, signal=signal))

    with pytest.raises(LLMClientAbortError):
        run_async(scenario())

    assert recorder.calls == 1


def test_already_set_signal_makes_no_transport_call(provider):
    recorder = Recorder([ok(provider, "x")])
    llm = make_llm(provider, recorder)

    async def scenario():
        signal = asyncio.Event()
        signal.set()
        await llm.complete("x", CompletionOptions(user_message="hi", signal=signal))

    with pytest.raises(LLMClientAbortError):
        run_async(scenario())

    assert recorder.calls == 0


def test_non_json_body_is_invalid_response(provider):
    recorder = Recorder([httpx.Response(200, text="<html>oops</html>")])
    llm = make_llm(provider, recorder)

    with pytest.raises(LLMInvalidResponseError):
        run_async(llm.complete("x", CompletionOptions(user_message="hi")))

    assert recorder.calls == 1


def test_transport_failure_is_not_retried(provider):
    async def broken(request):
        raise httpx.ConnectError("connection refused", request=request)

    recorder = Recorder([broken])
    llm = make_llm(provider, recorder)

    with pytest.raises(LLMTransportError):
        run_async(llm.complete("x", CompletionOptions(user_message="hi")))

    assert recorder.calls == 1


def test_result_is_immutable(provider):
    recorder = Recorder([ok(provider, "hello")])
    llm = make_llm(provider, recorder)

    result = run_async(llm.complete("x", CompletionOptions(user_message="hi")))

    with pytest.raises(dataclasses.FrozenInstanceError):
        result.text = "changed"  # type: ignore[misc]
    assert result.metadata.usage.total_tokens == 12


def test_stream_delivers_chunks_in_order(provider):
    body = PROVIDERS[provider][2](["Hel", "lo ", "wor", "ld"])

    async def streamed(request):
        async def pieces():
            for i in range(0, len(body), 7):
                yield body[i : i + 7]

        return httpx.Response(200, content=pieces())

    recorder = Recorder([streamed])
    llm = make_llm(provider, recorder)
    received: list[str] = []

    text = run_async(
        llm.stream_complete("x", CompletionOptions(user_message="hi"), on_chunk=received.append)
    )

    assert text == "Hello world"
    assert received == ["Hel", "lo ", "wor", "ld"]
    assert recorder.calls == 1


def test_stream_retries_rate_limit_before_first_chunk(provider):
    body = PROVIDERS[provider][2](["ok"])
    recorder = Recorder([httpx.Response(429, text="busy"), httpx.Response(200, content=body)])
    llm = make_llm(provider, recorder)
    received: list[str] = []

    async def sink(chunk: str) -> None:
        received.append(chunk)

    text = run_async(llm.stream_complete("x", CompletionOptions(user_message="hi"), on_chunk=sink))

    assert text == "ok"
    assert received == ["ok"]
    assert recorder.calls == 2


def test_observers_receive_lifecycle_events(provider):
    events = []

    async def async_observer(event):
        events.append(event)

    def failing_observer(event):
        raise RuntimeError("observer bug")

    recorder = Recorder([httpx.Response(429, text="busy"), ok(provider, "hello")])
    llm = make_llm(provider, recorder, observers=[async_observer, failing_observer])

    run_async(llm.complete("x", CompletionOptions(user_message="hi")))

    assert [e.event_type for e in events] == ["request_start", "retry", "request_success"]
    assert events[1].reason == "api_error"
    assert events[1].error_class == "LLMAPIError"
    assert all(e.provider_id == provider for e in events)


def test_concurrent_calls_do_not_interfere(provider):
    async def echo(request):
        marker = re.search(r"call-(\d{3})", request.content.decode("utf-8")).group(1)
        await asyncio.sleep(0.01)
        return ok(provider, "echo:" + marker)

    recorder = Recorder([echo])
    llm = make_llm(provider, recorder)

    async def scenario():
        return await asyncio.gather(
            *(
                llm.complete("x", CompletionOptions(user_message=f"call-{i:03d}"))
                for i in range(5)
            )
        )

    results = run_async(scenario())

    assert recorder.calls == 5
    assert [r.text for r in results] == [f"echo:{i:03d}" for i in range(5)]


def test_options_describe_output_mode():
    assert CompletionOptions().output_mode == "none"
    assert CompletionOptions().structured_output is False
    assert CompletionOptions(json_mode=True).output_mode == "json"
    assert CompletionOptions(json_mode=True, is_array=True).output_mode == "array"
    assert CompletionOptions(schema={"type": "object"}).output_mode == "schema"
    assert CompletionOptions(response_format={"type": "json_object"}).structured_output is True
