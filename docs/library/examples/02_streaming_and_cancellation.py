"""
Example 02: Streaming with a caller-controlled cancel signal.

Run:
    uv run python docs/library/examples/02_streaming_and_cancellation.py
"""

from __future__ import annotations

import asyncio
import os

from unillm import CompletionOptions, LLMClientAbortError, create_llm


async def main() -> None:
    llm = create_llm(os.getenv("UNILLM_ADAPTER", "groq-llama"))
    cancel = asyncio.Event()
    received: list[str] = []

    def on_chunk(chunk: str) -> None:
        received.append(chunk)
        print(chunk, end="", flush=True)
        if sum(len(c) for c in received) > 400:
            cancel.set()

    try:
        await llm.stream_complete(
            "You are a concise technical writer.",
            CompletionOptions(
                user_message="Explain exponential backoff in two paragraphs.",
                signal=cancel,
                timeout_s=20,
            ),
            on_chunk=on_chunk,
        )
    except LLMClientAbortError:
        print("\n[stopped after", len(received), "chunks]")

    print("\nhealth:", await llm.health_check())


if __name__ == "__main__":
    asyncio.run(main())
