from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Groq adapter tuned for Qwen models.
"""

import re
from dataclasses import replace
from typing import Any

from ..base.chat_completions import ChatCompletionsClientBase
from ...structured import resolve_schema, schema_instruction
from ...types import CompletionOptions, LLMCapabilities

_THINK_BLOCK_RE = re.compile(r"<think>.*?</think>\s*", re.DOTALL)


class GroqQwenClient(ChatCompletionsClientBase):
    """Qwen models served by Groq. Reasoning is suppressed for structured output."""

    _CAPABILITIES = LLMCapabilities(
        streaming=True,
        json_mode=True,
        structured_outputs=False,
        logprobs=False,
        seed=True,
        reasoning_effort=True,
    )

    @property
    def provider_id(self) -> str:
        return "groq-qwen"

    def _health_check_options(self) -> CompletionOptions:
        return replace(super()._health_check_options(), reasoning_effort="none")

    def _build_messages(
        self,
        system_prompt: str,
        opts: CompletionOptions,
        *,
        attempt: int,
        optimizations: list[str],
    ) -> tuple[list[dict[str, str]], str | None]:
        messages = self._base_messages(system_prompt, opts)
        if opts.schema is not None and not opts.response_format:
            # json_schema is not enforced for Qwen; describe the shape in the prompt instead.
            instruction = schema_instruction(resolve_schema(opts.schema).schema)
            if messages[0]["role"] == "system":
                messages[0] = {"role": "system", "content": f"{messages[0]['content']}\n\n{instruction}"}
            else:
                messages.insert(0, {"role": "system", "content": instruction})
            optimizations.append("schema_instruction")
        return messages, None

    def _sampling_params(
        self,
        system_prompt: str,
        opts: CompletionOptions,
        *,
        model: str,
        optimizations: list[str],
    ) -> dict[str, Any]:
        structured = opts.structured_output
        params: dict[str, Any] = {
            "temperature": opts.temperature if opts.temperature is not None else (0.5 if structured else 0.7),
            "top_p": opts.top_p if opts.top_p is not None else 0.9,
            "max_tokens": (
                opts.max_tokens
                if opts.max_tokens is not None
                else self._default_max_tokens(opts, structured_default=1024, free_default=1024)
            ),
        }

        reasoning_effort = opts.reasoning_effort or ("none" if structured else None)
        if reasoning_effort:
            params["reasoning_effort"] = reasoning_effort
            if not opts.reasoning_effort:
                optimizations.append("reasoning_suppressed")

        if opts.stop:
            params["stop"] = list(opts.stop)
        if opts.seed is not None:
            params["seed"] = opts.seed
        return params

    def _response_format(
        self,
        opts: CompletionOptions,
        optimizations: list[str],
    ) -> dict[str, Any] | None:
        if opts.response_format:
            return dict(opts.response_format)
        if opts.schema is not None:
            self.logger.info(
                "Schema downgraded to json_object mode",
                extra={"provider": self.provider_id},
            )
            if resolve_schema(opts.schema).schema.get("type") == "array":
                return None
            return {"type": "json_object"}
        if opts.json_mode and not opts.is_array:
            return {"type": "json_object"}
        return None

    def _clean_text(self, text: str) -> str:
        return _THINK_BLOCK_RE.sub("", text).strip() if "<think>" in text else text
