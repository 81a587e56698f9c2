"""
Example 01: Structured completion with validation and retry.

Run:
    uv run python docs/library/examples/01_structured_completion.py
"""

from __future__ import annotations

import asyncio
import os

from pydantic import BaseModel, Field

from unillm import CompletionOptions, create_llm
from unillm.logging import setup_logging


class Plan(BaseModel):
    title: str = Field(min_length=1)
    steps: list[str] = Field(min_length=2, max_length=8)


async def main() -> None:
    setup_logging(fmt="text")
    adapter = os.getenv("UNILLM_ADAPTER", "openai")
    llm = create_llm(adapter)

    result = await llm.complete(
        "You plan onboarding for engineering teams. Respond with JSON only.",
        CompletionOptions(
            user_message="Create a small onboarding plan for a new backend engineer.",
            schema=Plan,
            expected_output_size="medium",
        ),
    )

    report = result.metadata.validation
    print("adapter:", adapter)
    print("model:", result.metadata.model)
    print("attempts:", result.metadata.attempts)
    print("valid:", report.is_valid if report else None)
    print("confidence:", report.confidence if report else None)
    print("parsed:", report.parsed if report else None)


if __name__ == "__main__":
    asyncio.run(main())
