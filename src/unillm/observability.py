from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Typed observability primitives for completion lifecycle events.
"""

from dataclasses import dataclass
from typing import Awaitable, Literal, Protocol

from .types import Usage


LLMLifecycleEventType = Literal[
    "request_start",
    "retry",
    "request_success",
    "request_error",
]

RetryReason = Literal["api_error", "validation"]


@dataclass(frozen=True, slots=True)
class LLMLifecycleEvent:
    """
    One normalized lifecycle event emitted by the base LLM runtime.

    Observer callbacks are best-effort only; their failures never reach the caller.
    """

    event_type: LLMLifecycleEventType
    request_id: str
    provider_id: str
    model: str | None = None
    attempt: int | None = None
    latency_ms: float | None = None
    usage: Usage | None = None
    error_class: str | None = None
    error_message: str | None = None
    reason: RetryReason | None = None


class LLMObserver(Protocol):
    """Observer callback protocol used by the base LLM runtime."""

    def __call__(self, event: LLMLifecycleEvent) -> None | Awaitable[None]:
        ...

