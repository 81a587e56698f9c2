from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

This module defines the provider-agnostic types shared by every adapter.
"""

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, TypeAlias

if TYPE_CHECKING:
    from pydantic import BaseModel


JSONPrimitive: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONPrimitive | list["JSONValue"] | dict[str, "JSONValue"]
JSONObject: TypeAlias = dict[str, JSONValue]
JSONSchema: TypeAlias = dict[str, Any]

Role = Literal["system", "developer", "user", "assistant"]
ROLES: frozenset[str] = frozenset({"system", "developer", "user", "assistant"})

OutputSize = Literal["small", "medium", "large"]
OutputMode = Literal["none", "json", "schema", "array"]
AbortReason = Literal["timeout", "client"]


@dataclass(frozen=True, slots=True)
class Message:
    role: Role
    content: str


@dataclass(frozen=True, slots=True)
class CompletionOptions:
    """
    Per-call options for `LLM.complete` and `LLM.stream_complete`.

    Any field left as `None` falls back to the adapter's provider defaults.
    When `messages` is provided it is used verbatim as the conversation and
    `user_message` is ignored.
    """

    # Input
    user_message: str | None = None
    messages: list[Message] | None = None
    developer_message: str | None = None
    model: str | None = None

    # Sampling
    max_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    stop: list[str] | None = None
    seed: int | None = None

    # Deadline / cancellation
    timeout_s: float | None = None
    signal: asyncio.Event | None = None

    # Structured output
    json_mode: bool = False
    is_array: bool = False
    schema: "JSONSchema | type[BaseModel] | None" = None
    response_format: JSONObject | None = None
    required_fields: list[str] | None = None

    # Token probabilities
    logprobs: bool = False
    top_logprobs: int | None = None

    # Retry
    retry_on_validation_failure: bool = True
    max_retries: int | None = None

    # Prompt shaping
    expected_output_size: OutputSize | None = None
    enable_bookending: bool = True
    enable_sandwich: bool = True
    enable_prefill: bool = True
    reasoning_effort: str | None = None
    prediction: str | None = None

    @property
    def structured_output(self) -> bool:
        return bool(self.json_mode or self.schema is not None or self.response_format)

    @property
    def output_mode(self) -> OutputMode:
        if self.schema is not None:
            return "schema"
        if self.is_array and self.structured_output:
            return "array"
        if self.structured_output:
            return "json"
        return "none"


@dataclass(frozen=True, slots=True)
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True, slots=True)
class TokenLogprob:
    token: str
    logprob: float
    probability: float


@dataclass(frozen=True, slots=True)
class ConfidenceSummary:
    mean: float = 0.0
    min: float = 0.0
    max: float = 0.0
    low_confidence_count: int = 0
    token_count: int = 0


@dataclass(frozen=True, slots=True)
class ValidationReport:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    confidence: float = 1.0
    is_refusal: bool = False
    is_truncated: bool = False
    has_preamble: bool = False
    has_postamble: bool = False
    parsed: Any = None
    cleaned_text: str | None = None


@dataclass(frozen=True, slots=True)
class RepairResult:
    text: str
    changes: list[str] = field(default_factory=list)

    @property
    def repaired(self) -> bool:
        return bool(self.changes)


@dataclass(frozen=True, slots=True)
class CompletionMetadata:
    provider: str
    model: str
    usage: Usage = field(default_factory=Usage)
    finish_reason: str | None = None
    logprobs: list[TokenLogprob] | None = None
    average_confidence: float | None = None
    validation: ValidationReport | None = None
    system_fingerprint: str | None = None
    optimizations: list[str] = field(default_factory=list)
    attempts: int = 1
    request_id: str | None = None
    raw: dict[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class CompletionResult:
    text: str
    metadata: CompletionMetadata

    @property
    def is_valid(self) -> bool:
        validation = self.metadata.validation
        return validation is None or validation.is_valid


@dataclass(frozen=True, slots=True)
class HealthStatus:
    healthy: bool
    provider: str
    error: str | None = None


@dataclass(frozen=True, slots=True)
class LLMCapabilities:
    streaming: bool = True
    json_mode: bool = True
    structured_outputs: bool = False
    logprobs: bool = False
    seed: bool = False
    reasoning_effort: bool = False


@dataclass(slots=True)
class AttemptContext:
    """Mutable retry bookkeeping owned by exactly one call."""

    attempt: int = 0
    total_backoff_s: float = 0.0
    last_error: Exception | None = None
