from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.
"""

import asyncio
import inspect
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, TypeVar, cast

import httpx

from .config import AdapterConfig
from .errors import (
    LLMAPIError,
    LLMConfigurationError,
    LLMError,
    LLMInvalidRequestError,
    LLMInvalidResponseError,
    LLMTransportError,
)
from .logging import get_logger
from .observability import LLMLifecycleEvent, LLMObserver, RetryReason
from .structured import ResolvedSchema, resolve_schema, schema_expects_array
from .transport.cancellation import run_with_deadline
from .transport.sse import SSEDecoder
from .types import (
    ROLES,
    AttemptContext,
    CompletionOptions,
    CompletionResult,
    HealthStatus,
    LLMCapabilities,
    Usage,
    ValidationReport,
)
from .utils import backoff_delay, clamp_str, run_sync
from .validation.response_validator import validate_response

ReturnT = TypeVar("ReturnT")

ChunkSink = Callable[[str], "None | Awaitable[None]"]

HEALTH_CHECK_PROMPT = 'Respond with valid JSON containing: {"status": "healthy"}'
MAX_ERROR_BODY_CHARS = 2000


@dataclass(frozen=True, slots=True)
class ProviderRequest:
    """One fully-built HTTP request for a single attempt."""

    url: str
    headers: dict[str, str]
    payload: dict[str, Any]
    prefill: str | None = None
    optimizations: list[str] = field(default_factory=list)


class LLM(ABC):
    """
    Base class for provider adapters.

    Public methods define one stable contract for every provider:
      - complete/complete_sync
      - stream_complete
      - health_check

    Instances hold read-only configuration only. Everything that changes
    during a call (attempt counter, abort state, HTTP client) is created per
    call, so one instance can serve concurrent calls safely.
    """

    # Upper bound for the health-check deadline; capped by the config timeout.
    health_check_timeout_s: float = 15.0

    # SSE payload that terminates a stream; `None` means the stream just closes.
    stream_end_marker: str | None = "[DONE]"

    def __init__(
        self,
        config: AdapterConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        observers: list[LLMObserver] | None = None,
    ) -> None:
        """
        Create an adapter.

        `transport` is handed to every per-call `httpx.AsyncClient`; tests use
        it to inject `httpx.MockTransport`. Observers receive lifecycle events
        and are isolated from call execution.
        """
        self.config = config or AdapterConfig.from_env(self.provider_id)
        if not self.config.api_key:
            raise LLMConfigurationError(f"{self.provider_id}: api_key is required")
        if not self.config.default_model:
            raise LLMConfigurationError(f"{self.provider_id}: default_model is required")
        if not self.config.base_url:
            raise LLMConfigurationError(f"{self.provider_id}: base_url is required")
        self._transport = transport
        self._observers = tuple(observers or ())
        self.logger = get_logger(f"clients.{self.provider_id}")

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Stable provider id (e.g. 'openai', 'groq-llama')."""

    @property
    @abstractmethod
    def capabilities(self) -> LLMCapabilities:
        """Capability flags for the concrete adapter."""

    async def complete(
        self,
        system_prompt: str,
        options: CompletionOptions | None = None,
    ) -> CompletionResult:
        """
        Run one completion with retries.

        Retryable API errors (429/5xx) and, for structured requests, invalid
        output are retried within the budget. When validation still fails
        after the last attempt the invalid result is returned with its report
        attached; it is not raised.
        """
        opts = options or CompletionOptions()
        self._validate_options(opts)
        model = opts.model or self.config.default_model
        max_retries = self._resolve_max_retries(opts)
        schema = resolve_schema(opts.schema) if opts.schema is not None else None
        request_id = self._new_request_id()
        ctx = AttemptContext()

        await self._emit_lifecycle_event(
            event_type="request_start",
            request_id=request_id,
            model=model,
            attempt=1,
        )

        while True:
            started_at = time.monotonic()
            self.logger.debug(
                "Starting completion attempt",
                extra=self._log_fields(request_id, model, ctx.attempt),
            )
            try:
                result = await self._complete_once(system_prompt, opts, model, attempt=ctx.attempt)
            except LLMAPIError as e:
                ctx.last_error = e
                if e.retryable and ctx.attempt < max_retries:
                    await self._retry_backoff(ctx, request_id, model, started_at, e)
                    continue
                await self._fail(ctx, request_id, model, started_at, e)
                raise
            except LLMError as e:
                ctx.last_error = e
                await self._fail(ctx, request_id, model, started_at, e)
                raise

            if opts.structured_output:
                report = self._validate_output(result.text, opts, schema)
                result = replace(result, metadata=replace(result.metadata, validation=report))
                if (
                    not report.is_valid
                    and opts.retry_on_validation_failure
                    and ctx.attempt < max_retries
                ):
                    delay = backoff_delay(
                        ctx.attempt, self.config.backoff_base_s, self.config.backoff_jitter_s
                    )
                    self.logger.warning(
                        "Structured output failed validation; retrying",
                        extra={
                            **self._log_fields(request_id, model, ctx.attempt),
                            "errors": report.errors,
                            "confidence": report.confidence,
                            "delay_s": round(delay, 3),
                        },
                    )
                    await self._emit_lifecycle_event(
                        event_type="retry",
                        request_id=request_id,
                        model=model,
                        attempt=ctx.attempt + 1,
                        latency_ms=self._elapsed_ms(started_at),
                        reason="validation",
                    )
                    await asyncio.sleep(delay)
                    ctx.total_backoff_s += delay
                    ctx.attempt += 1
                    continue
                if not report.is_valid:
                    self.logger.warning(
                        "Returning structured output that failed validation",
                        extra={
                            **self._log_fields(request_id, model, ctx.attempt),
                            "errors": report.errors,
                        },
                    )

            result = replace(
                result,
                metadata=replace(
                    result.metadata,
                    attempts=ctx.attempt + 1,
                    request_id=request_id,
                ),
            )
            latency_ms = self._elapsed_ms(started_at)
            self.logger.info(
                "Completion finished",
                extra={
                    **self._log_fields(request_id, model, ctx.attempt),
                    "duration_ms": round(latency_ms, 1),
                    "finish_reason": result.metadata.finish_reason,
                    "output_tokens": result.metadata.usage.output_tokens,
                },
            )
            await self._emit_lifecycle_event(
                event_type="request_success",
                request_id=request_id,
                model=model,
                attempt=ctx.attempt + 1,
                latency_ms=latency_ms,
                usage=result.metadata.usage,
            )
            return result

    def complete_sync(
        self,
        system_prompt: str,
        options: CompletionOptions | None = None,
    ) -> CompletionResult:
        """Blocking wrapper around `complete` for scripts."""
        return run_sync(self.complete(system_prompt, options))

    async def stream_complete(
        self,
        system_prompt: str,
        options: CompletionOptions | None = None,
        *,
        on_chunk: ChunkSink,
    ) -> str:
        """
        Stream a completion, delivering text chunks to `on_chunk` in receipt order.

        Returns the full concatenated text. A retryable status on the opening
        response is retried; once a chunk has been delivered, errors propagate.
        """
        opts = options or CompletionOptions()
        self._validate_options(opts)
        model = opts.model or self.config.default_model
        max_retries = self._resolve_max_retries(opts)
        request_id = self._new_request_id()
        ctx = AttemptContext()

        await self._emit_lifecycle_event(
            event_type="request_start",
            request_id=request_id,
            model=model,
            attempt=1,
        )

        while True:
            started_at = time.monotonic()
            self.logger.debug(
                "Starting stream attempt",
                extra=self._log_fields(request_id, model, ctx.attempt),
            )
            delivered: list[str] = []
            try:
                text = await self._stream_once(
                    system_prompt,
                    opts,
                    model,
                    attempt=ctx.attempt,
                    on_chunk=on_chunk,
                    delivered=delivered,
                )
            except LLMAPIError as e:
                ctx.last_error = e
                if e.retryable and not delivered and ctx.attempt < max_retries:
                    await self._retry_backoff(ctx, request_id, model, started_at, e)
                    continue
                await self._fail(ctx, request_id, model, started_at, e)
                raise
            except LLMError as e:
                ctx.last_error = e
                await self._fail(ctx, request_id, model, started_at, e)
                raise

            latency_ms = self._elapsed_ms(started_at)
            self.logger.info(
                "Stream finished",
                extra={
                    **self._log_fields(request_id, model, ctx.attempt),
                    "duration_ms": round(latency_ms, 1),
                    "chunks": len(delivered),
                },
            )
            await self._emit_lifecycle_event(
                event_type="request_success",
                request_id=request_id,
                model=model,
                attempt=ctx.attempt + 1,
                latency_ms=latency_ms,
            )
            return text

    async def health_check(self) -> HealthStatus:
        """Probe the provider with a tiny JSON request. Never raises."""
        try:
            result = await self.complete(HEALTH_CHECK_PROMPT, self._health_check_options())
        except Exception as e:
            return HealthStatus(healthy=False, provider=self.provider_id, error=str(e))

        report = result.metadata.validation
        if report is not None and not report.is_valid:
            return HealthStatus(
                healthy=False,
                provider=self.provider_id,
                error="; ".join(report.errors),
            )
        return HealthStatus(healthy=True, provider=self.provider_id)

    def _health_check_options(self) -> CompletionOptions:
        return CompletionOptions(
            max_tokens=50,
            timeout_s=min(self.health_check_timeout_s, self.config.default_timeout_s),
            json_mode=True,
            retry_on_validation_failure=False,
            max_retries=0,
        )

    @abstractmethod
    def _build_request(
        self,
        system_prompt: str,
        opts: CompletionOptions,
        *,
        model: str,
        attempt: int,
        stream: bool,
    ) -> ProviderRequest:
        """
        Build the provider request for one attempt.

        Must be a pure function of its arguments: nothing built for one
        attempt may leak into the next.
        """

    @abstractmethod
    def _normalize_response(
        self,
        data: dict[str, Any],
        opts: CompletionOptions,
        request: ProviderRequest,
        *,
        model: str,
    ) -> CompletionResult:
        """Map the provider's response body to a `CompletionResult`."""

    @abstractmethod
    def _extract_stream_text(self, event: dict[str, Any]) -> str | None:
        """Return the text carried by one decoded stream event, if any."""

    async def _complete_once(
        self,
        system_prompt: str,
        opts: CompletionOptions,
        model: str,
        *,
        attempt: int,
    ) -> CompletionResult:
        request = self._build_request(system_prompt, opts, model=model, attempt=attempt, stream=False)

        async def _send() -> CompletionResult:
            async with self._http_client() as client:
                response = await client.post(
                    request.url,
                    headers=request.headers,
                    json=request.payload,
                )
                self._raise_for_status(response)
                try:
                    data = response.json()
                except ValueError as e:
                    raise LLMInvalidResponseError(
                        f"{self.provider_id} returned a non-JSON body: "
                        f"{clamp_str(response.text, MAX_ERROR_BODY_CHARS)}"
                    ) from e
            if not isinstance(data, dict):
                raise LLMInvalidResponseError(f"{self.provider_id} returned a non-object JSON body")
            return self._normalize_response(data, opts, request, model=model)

        result = await self._with_deadline(_send, opts)
        if request.prefill:
            result = replace(result, text=self._apply_prefill(result.text, request.prefill))
        return result

    async def _stream_once(
        self,
        system_prompt: str,
        opts: CompletionOptions,
        model: str,
        *,
        attempt: int,
        on_chunk: ChunkSink,
        delivered: list[str],
    ) -> str:
        request = self._build_request(system_prompt, opts, model=model, attempt=attempt, stream=True)

        async def _deliver(chunk: str) -> None:
            if not delivered and request.prefill:
                chunk = self._apply_prefill(chunk, request.prefill)
            delivered.append(chunk)
            result = on_chunk(chunk)
            if inspect.isawaitable(result):
                await cast(Awaitable[Any], result)

        async def _read() -> str:
            decoder = SSEDecoder(self._extract_stream_text, end_marker=self.stream_end_marker)
            async with self._http_client() as client:
                async with client.stream(
                    "POST",
                    request.url,
                    headers=request.headers,
                    json=request.payload,
                ) as response:
                    if not response.is_success:
                        await response.aread()
                        self._raise_for_status(response)
                    async for raw in response.aiter_bytes():
                        for chunk in decoder.feed(raw):
                            await _deliver(chunk)
                        if decoder.done:
                            break
                    for chunk in decoder.flush():
                        await _deliver(chunk)
            return "".join(delivered)

        return await self._with_deadline(_read, opts)

    async def _with_deadline(
        self,
        fn: Callable[[], Awaitable[ReturnT]],
        opts: CompletionOptions,
    ) -> ReturnT:
        timeout = opts.timeout_s if opts.timeout_s is not None else self.config.default_timeout_s
        try:
            return await run_with_deadline(
                fn,
                timeout_s=timeout,
                signal=opts.signal,
                provider=self.provider_id,
            )
        except httpx.TransportError as e:
            raise LLMTransportError(f"{self.provider_id} transport error: {e}") from e

    def _http_client(self) -> httpx.AsyncClient:
        # Deadlines are enforced by run_with_deadline, not by httpx.
        return httpx.AsyncClient(transport=self._transport, timeout=None)

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        raise LLMAPIError(
            self.provider_id,
            response.status_code,
            clamp_str(response.text, MAX_ERROR_BODY_CHARS),
        )

    def _apply_prefill(self, text: str, prefill: str) -> str:
        if text.lstrip().startswith(prefill):
            return text
        return prefill + text

    def _validate_output(
        self,
        text: str,
        opts: CompletionOptions,
        schema: ResolvedSchema | None,
    ) -> ValidationReport:
        expect_array = opts.is_array or (
            schema is not None and schema_expects_array(schema.schema)
        )
        return validate_response(
            text,
            expect_json=True,
            expect_array=expect_array,
            required_fields=opts.required_fields,
            response_model=schema.model if schema is not None else None,
        )

    def _validate_options(self, opts: CompletionOptions) -> None:
        """Reject malformed options before any network I/O."""
        if opts.messages is not None:
            if not opts.messages:
                raise LLMInvalidRequestError("CompletionOptions.messages must not be empty")
            for idx, message in enumerate(opts.messages):
                if message.role not in ROLES:
                    raise LLMInvalidRequestError(
                        f"CompletionOptions.messages[{idx}].role is not supported: {message.role!r}"
                    )
                if not isinstance(message.content, str):
                    raise LLMInvalidRequestError(
                        f"CompletionOptions.messages[{idx}].content must be a string"
                    )

        if opts.max_tokens is not None and opts.max_tokens <= 0:
            raise LLMInvalidRequestError("CompletionOptions.max_tokens must be greater than 0")
        if opts.timeout_s is not None and opts.timeout_s <= 0:
            raise LLMInvalidRequestError("CompletionOptions.timeout_s must be greater than 0")
        if opts.temperature is not None and opts.temperature < 0:
            raise LLMInvalidRequestError("CompletionOptions.temperature must be >= 0")
        if opts.top_p is not None and (opts.top_p <= 0 or opts.top_p > 1):
            raise LLMInvalidRequestError("CompletionOptions.top_p must be in (0, 1]")
        if opts.top_logprobs is not None and opts.top_logprobs < 0:
            raise LLMInvalidRequestError("CompletionOptions.top_logprobs must be >= 0")
        if opts.max_retries is not None and opts.max_retries < 0:
            raise LLMInvalidRequestError("CompletionOptions.max_retries must be >= 0")
        if opts.expected_output_size not in (None, "small", "medium", "large"):
            raise LLMInvalidRequestError(
                "CompletionOptions.expected_output_size must be small, medium or large"
            )
        if opts.stop is not None:
            for idx, item in enumerate(opts.stop):
                if not isinstance(item, str) or not item:
                    raise LLMInvalidRequestError(
                        f"CompletionOptions.stop[{idx}] must be a non-empty string"
                    )
        if opts.schema is not None:
            try:
                resolve_schema(opts.schema)
            except TypeError as e:
                raise LLMInvalidRequestError(str(e)) from e

    def _resolve_max_retries(self, opts: CompletionOptions) -> int:
        return self.config.max_retries if opts.max_retries is None else opts.max_retries

    async def _retry_backoff(
        self,
        ctx: AttemptContext,
        request_id: str,
        model: str,
        started_at: float,
        error: LLMAPIError,
    ) -> None:
        delay = backoff_delay(ctx.attempt, self.config.backoff_base_s, self.config.backoff_jitter_s)
        self.logger.warning(
            "Retryable API error; backing off",
            extra={
                **self._log_fields(request_id, model, ctx.attempt),
                "status_code": error.status_code,
                "delay_s": round(delay, 3),
            },
        )
        await self._emit_lifecycle_event(
            event_type="retry",
            request_id=request_id,
            model=model,
            attempt=ctx.attempt + 1,
            latency_ms=self._elapsed_ms(started_at),
            error=error,
            reason="api_error",
        )
        await asyncio.sleep(delay)
        ctx.total_backoff_s += delay
        ctx.attempt += 1

    async def _fail(
        self,
        ctx: AttemptContext,
        request_id: str,
        model: str,
        started_at: float,
        error: LLMError,
    ) -> None:
        self.logger.error(
            "Completion failed",
            extra={
                **self._log_fields(request_id, model, ctx.attempt),
                "error_type": type(error).__name__,
                "error": str(error),
                "status_code": getattr(error, "status_code", None),
                "total_backoff_s": round(ctx.total_backoff_s, 3),
            },
        )
        await self._emit_lifecycle_event(
            event_type="request_error",
            request_id=request_id,
            model=model,
            attempt=ctx.attempt + 1,
            latency_ms=self._elapsed_ms(started_at),
            error=error,
        )

    def _log_fields(self, request_id: str, model: str, attempt: int) -> dict[str, Any]:
        return {
            "provider": self.provider_id,
            "model": model,
            "request_id": request_id,
            "attempt": attempt,
        }

    def _elapsed_ms(self, started_at: float) -> float:
        return (time.monotonic() - started_at) * 1000.0

    def _new_request_id(self) -> str:
        """Generate a new opaque correlation id."""
        return uuid.uuid4().hex

    async def _emit_lifecycle_event(
        self,
        *,
        event_type: str,
        request_id: str,
        model: str | None,
        attempt: int | None = None,
        latency_ms: float | None = None,
        usage: Usage | None = None,
        error: Exception | None = None,
        reason: RetryReason | None = None,
    ) -> None:
        """Emit one lifecycle event to observers, swallowing observer failures."""
        if not self._observers:
            return

        event = LLMLifecycleEvent(
            event_type=cast(Any, event_type),
            request_id=request_id,
            provider_id=self.provider_id,
            model=model,
            attempt=attempt,
            latency_ms=latency_ms,
            usage=usage,
            error_class=type(error).__name__ if error is not None else None,
            error_message=str(error) if error is not None else None,
            reason=reason,
        )

        for observer in self._observers:
            try:
                result = observer(event)
                if inspect.isawaitable(result):
                    await cast(Awaitable[Any], result)
            except Exception:
                self.logger.debug("Observer raised; ignoring", exc_info=True)
                continue
