from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Shared response-normalization helpers used across provider adapters.
"""

from typing import Any

from ...types import TokenLogprob, Usage
from ...validation.confidence import score_logprobs, to_token_logprob


def _as_int(value: Any) -> int:
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


def first_choice(raw_dict: dict[str, Any]) -> dict[str, Any]:
    choices = raw_dict.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        return choices[0]
    return {}


def extract_text_from_content(content: Any) -> str:
    """Extract plain text from string or content-part shapes."""
    if isinstance(content, str):
        return content

    if isinstance(content, list):
        out: list[str] = []
        for item in content:
            if isinstance(item, str):
                out.append(item)
                continue
            if isinstance(item, dict) and isinstance(item.get("text"), str):
                out.append(item["text"])
        return "".join(out)

    if isinstance(content, dict):
        text = content.get("text")
        if isinstance(text, str):
            return text

    return ""


def extract_usage(raw_dict: dict[str, Any]) -> Usage:
    """Normalize chat-completions usage counters."""
    usage = raw_dict.get("usage")
    if not isinstance(usage, dict):
        return Usage()

    input_tokens = _as_int(usage.get("prompt_tokens") or usage.get("input_tokens"))
    output_tokens = _as_int(usage.get("completion_tokens") or usage.get("output_tokens"))
    total_tokens = _as_int(usage.get("total_tokens")) or input_tokens + output_tokens
    return Usage(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=total_tokens,
    )


def extract_gemini_usage(raw_dict: dict[str, Any]) -> Usage:
    """Normalize Gemini `usageMetadata` counters."""
    usage = raw_dict.get("usageMetadata")
    if not isinstance(usage, dict):
        return Usage()

    input_tokens = _as_int(usage.get("promptTokenCount"))
    output_tokens = _as_int(usage.get("candidatesTokenCount"))
    total_tokens = _as_int(usage.get("totalTokenCount")) or input_tokens + output_tokens
    return Usage(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=total_tokens,
    )


def extract_chat_logprobs(choice: dict[str, Any]) -> list[TokenLogprob] | None:
    """Read `choices[0].logprobs.content[*]` token probabilities."""
    logprobs = choice.get("logprobs")
    if not isinstance(logprobs, dict):
        return None
    content = logprobs.get("content")
    if not isinstance(content, list):
        return None

    out: list[TokenLogprob] = []
    for item in content:
        if not isinstance(item, dict):
            continue
        token = item.get("token")
        logprob = item.get("logprob")
        if isinstance(token, str) and isinstance(logprob, (int, float)):
            out.append(to_token_logprob(token, float(logprob)))
    return out


def average_confidence(tokens: list[TokenLogprob] | None) -> float | None:
    if not tokens:
        return None
    return score_logprobs(tokens).mean
