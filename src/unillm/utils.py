from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Utility functions shared by adapters: backoff, token estimates, seeds and sync wrappers.
"""
import asyncio
import hashlib
import random

SEED_MODULUS = 2147483647


def clamp_str(s: str, max_chars: int) -> str:
    if len(s) <= max_chars:
        return s
    return s[:max_chars] + "…"


def estimate_tokens(*texts: str | None) -> int:
    """Rough token estimate: four characters per token."""
    return sum(len(t) for t in texts if t) // 4


def derive_seed(text: str) -> int:
    """
    Stable seed derived from a prompt, so identical structured requests
    sample identically across processes.
    """
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") % SEED_MODULUS


def backoff_delay(attempt: int, base_s: float, jitter_s: float) -> float:
    """
    Exponential backoff with jitter.
    attempt=0 => base, attempt=1 => 2*base, etc.
    """
    exp = base_s * (2 ** attempt)
    jitter = random.uniform(0.0, jitter_s) if jitter_s > 0 else 0.0
    return exp + jitter


def run_sync(coro):
    """
    Run an async coroutine from sync context.
    If already inside a running event loop, raise a clear error.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    coro.close()
    raise RuntimeError(
        "Cannot use *_sync methods inside a running event loop. Use async methods instead."
    )
