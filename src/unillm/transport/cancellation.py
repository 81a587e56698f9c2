from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Deadline and caller-cancellation handling for one request attempt.

The deadline timer and the caller's signal race to fire one shared token.
Whichever fires first is recorded once, so a timeout is never reported as a
client abort (or vice versa) when both happen close together.
"""

import asyncio
from typing import Awaitable, Callable, TypeVar

from ..errors import LLMClientAbortError, LLMTimeoutError
from ..types import AbortReason

T = TypeVar("T")


class AbortState:
    """Single-assignment abort reason plus the token both triggers fire."""

    __slots__ = ("reason", "token")

    def __init__(self) -> None:
        self.reason: AbortReason | None = None
        self.token = asyncio.Event()

    @property
    def aborted(self) -> bool:
        return self.reason is not None

    def fire(self, reason: AbortReason) -> bool:
        if self.reason is not None:
            return False
        self.reason = reason
        self.token.set()
        return True


async def _watch_signal(signal: asyncio.Event, state: AbortState) -> None:
    await signal.wait()
    state.fire("client")


async def run_with_deadline(
    operation: Callable[[], Awaitable[T]],
    *,
    timeout_s: float | None,
    signal: asyncio.Event | None,
    provider: str,
) -> T:
    """
    Run `operation()` until it finishes, the deadline passes or `signal` is set.

    Raises `LLMTimeoutError` or `LLMClientAbortError` on abort. The operation
    is cancelled and awaited before returning, on every exit path.
    """
    if signal is not None and signal.is_set():
        raise LLMClientAbortError(provider)

    state = AbortState()
    loop = asyncio.get_running_loop()
    timer = (
        loop.call_later(timeout_s, state.fire, "timeout")
        if timeout_s is not None
        else None
    )
    watcher = (
        asyncio.ensure_future(_watch_signal(signal, state))
        if signal is not None
        else None
    )
    work = asyncio.ensure_future(operation())
    abort_wait = asyncio.ensure_future(state.token.wait())

    try:
        await asyncio.wait({work, abort_wait}, return_when=asyncio.FIRST_COMPLETED)
        if work.done():
            return work.result()

        if state.reason == "timeout":
            raise LLMTimeoutError(provider, timeout_s or 0.0)
        raise LLMClientAbortError(provider)
    finally:
        if timer is not None:
            timer.cancel()
        pending = [t for t in (work, watcher, abort_wait) if t is not None and not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
