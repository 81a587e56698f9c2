from __future__ import annotations

import asyncio

import pytest

from unillm.errors import LLMClientAbortError, LLMTimeoutError
from unillm.transport.cancellation import AbortState, run_with_deadline


def run_async(coro):
    return asyncio.run(coro)


def test_abort_state_is_single_assignment():
    async def scenario():
        state = AbortState()
        assert state.fire("timeout") is True
        assert state.fire("client") is False
        return state

    state = run_async(scenario())

    assert state.reason == "timeout"
    assert state.aborted is True
    assert state.token.is_set()


def test_operation_result_is_returned():
    async def work():
        await asyncio.sleep(0)
        return 42

    assert run_async(run_with_deadline(work, timeout_s=1.0, signal=None, provider="p")) == 42


def test_operation_errors_propagate():
    async def work():
        raise ValueError("boom")

    with pytest.raises(ValueError):
        run_async(run_with_deadline(work, timeout_s=1.0, signal=None, provider="p"))


def test_deadline_raises_timeout_and_cancels_work():
    cancelled = []

    async def work():
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            cancelled.append(True)
            raise

    with pytest.raises(LLMTimeoutError) as exc_info:
        run_async(run_with_deadline(work, timeout_s=0.02, signal=None, provider="p"))

    assert cancelled == [True]
    assert str(exc_info.value) == "p request timeout after 20ms"


def test_signal_raises_client_abort_not_timeout():
    async def scenario():
        signal = asyncio.Event()
        asyncio.get_running_loop().call_later(0.01, signal.set)
        await run_with_deadline(lambda: asyncio.sleep(5), timeout_s=1.0, signal=signal, provider="p")

    with pytest.raises(LLMClientAbortError):
        run_async(scenario())


def test_preset_signal_never_starts_operation():
    started = []

    async def work():
        started.append(True)

    async def scenario():
        signal = asyncio.Event()
        signal.set()
        await run_with_deadline(work, timeout_s=1.0, signal=signal, provider="p")

    with pytest.raises(LLMClientAbortError):
        run_async(scenario())

    assert started == []


def test_no_tasks_leak_after_abort():
    async def scenario():
        signal = asyncio.Event()
        asyncio.get_running_loop().call_later(0.01, signal.set)
        with pytest.raises(LLMClientAbortError):
            await run_with_deadline(lambda: asyncio.sleep(5), timeout_s=None, signal=signal, provider="p")
        current = asyncio.current_task()
        return [t for t in asyncio.all_tasks() if t is not current]

    assert run_async(scenario()) == []
