from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

OpenAI-compatible adapter built on top of the shared chat-completions base.
"""

import re
from typing import Any

from ..base.chat_completions import ChatCompletionsClientBase
from ...structured import resolve_schema
from ...types import CompletionOptions, LLMCapabilities
from ...utils import derive_seed, estimate_tokens

BOOKENDING_THRESHOLD_TOKENS = 30_000
MAX_BOOKEND_CONSTRAINTS = 10

_CRITICAL_LINE_RE = re.compile(r"\b(?:IMPORTANT|CRITICAL|MUST|ONLY|NEVER)\b")


class OpenAIClient(ChatCompletionsClientBase):
    """Adapter for OpenAI and OpenAI-compatible chat-completions endpoints."""

    _CAPABILITIES = LLMCapabilities(
        streaming=True,
        json_mode=True,
        structured_outputs=True,
        logprobs=True,
        seed=True,
        reasoning_effort=True,
    )
    _SUPPORTED_ROLES = frozenset({"system", "developer", "user", "assistant"})

    @property
    def provider_id(self) -> str:
        return "openai"

    def _build_messages(
        self,
        system_prompt: str,
        opts: CompletionOptions,
        *,
        attempt: int,
        optimizations: list[str],
    ) -> tuple[list[dict[str, str]], str | None]:
        messages = self._base_messages(system_prompt, opts)

        if opts.developer_message:
            messages.insert(0, {"role": "developer", "content": opts.developer_message})
            optimizations.append("developer_message")

        if opts.enable_bookending:
            estimated = estimate_tokens(*(m["content"] for m in messages))
            if estimated > BOOKENDING_THRESHOLD_TOKENS:
                messages.append({"role": "user", "content": self._bookend(system_prompt, opts)})
                optimizations.append("bookending")
                self.logger.debug(
                    "Added bookending reminder for long context",
                    extra={"provider": self.provider_id, "estimated_tokens": estimated},
                )

        return messages, None

    def _bookend(self, system_prompt: str, opts: CompletionOptions) -> str:
        """Repeat the critical formatting lines at the end of a long prompt."""
        constraints = [
            line.strip()
            for line in system_prompt.splitlines()
            if _CRITICAL_LINE_RE.search(line)
        ][:MAX_BOOKEND_CONSTRAINTS]
        if opts.structured_output:
            constraints.append(
                "Output a single valid JSON " + ("array" if opts.is_array else "object") + " and nothing else."
            )
        if not constraints:
            constraints.append("Follow the instructions given at the start of this conversation.")

        return "\n".join(
            [
                "Based on the context above, produce your response now.",
                "Follow these format constraints exactly:",
                *(f"- {c}" for c in constraints),
            ]
        )

    def _sampling_params(
        self,
        system_prompt: str,
        opts: CompletionOptions,
        *,
        model: str,
        optimizations: list[str],
    ) -> dict[str, Any]:
        structured = opts.structured_output
        temperature = opts.temperature if opts.temperature is not None else (0.0 if structured else 0.7)

        params: dict[str, Any] = {"temperature": temperature}
        if opts.max_tokens is not None:
            params["max_tokens"] = opts.max_tokens
        if opts.top_p is not None:
            params["top_p"] = opts.top_p
        elif temperature == 0:
            params["top_p"] = 1.0
        if structured:
            params["frequency_penalty"] = 0

        if opts.seed is not None:
            params["seed"] = opts.seed
        elif structured:
            params["seed"] = derive_seed(system_prompt)
            optimizations.append("derived_seed")

        if opts.stop:
            params["stop"] = list(opts.stop)
        if opts.logprobs:
            params["logprobs"] = True
            if opts.top_logprobs is not None:
                params["top_logprobs"] = opts.top_logprobs
        if opts.reasoning_effort:
            params["reasoning_effort"] = opts.reasoning_effort
        if opts.prediction:
            params["prediction"] = {"type": "content", "content": opts.prediction}
            optimizations.append("predicted_output")
        return params

    def _response_format(
        self,
        opts: CompletionOptions,
        optimizations: list[str],
    ) -> dict[str, Any] | None:
        if opts.response_format:
            return dict(opts.response_format)
        if opts.schema is not None:
            resolved = resolve_schema(opts.schema)
            optimizations.append("structured_outputs")
            return {
                "type": "json_schema",
                "json_schema": {
                    "name": resolved.name,
                    "strict": resolved.strict,
                    "schema": resolved.schema,
                },
            }
        return super()._response_format(opts, optimizations)
