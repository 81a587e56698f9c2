from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Shared base adapter for providers exposing the OpenAI chat-completions wire format.

This class centralizes:
  - endpoint and bearer-auth headers
  - conversation assembly from a system prompt plus options
  - response_format selection
  - response, usage and logprob normalization
  - stream delta extraction

Concrete adapters only implement provider-specific sampling defaults and
prompt shaping.
"""

import re
from typing import Any

from ..shared.normalization import (
    average_confidence,
    extract_chat_logprobs,
    extract_text_from_content,
    extract_usage,
    first_choice,
)
from ...llm import LLM, ProviderRequest
from ...structured import resolve_schema
from ...types import (
    CompletionMetadata,
    CompletionOptions,
    CompletionResult,
    LLMCapabilities,
    Message,
)

EMPTY_USER_MESSAGE = "Please proceed."
JSON_KEYWORD_PREFIX = "Respond with valid JSON.\n\n"

_JSON_WORD_RE = re.compile(r"json", re.IGNORECASE)

# Output-size presets: (structured, free-form) token limits.
MAX_TOKEN_PRESETS: dict[str, tuple[int, int]] = {
    "small": (256, 512),
    "medium": (512, 1024),
    "large": (1024, 2048),
}


class ChatCompletionsClientBase(LLM):
    """Provider-agnostic base for chat-completions compatible clients."""

    _CAPABILITIES = LLMCapabilities(
        streaming=True,
        json_mode=True,
        structured_outputs=True,
        logprobs=True,
        seed=True,
    )

    # Role names the provider accepts; anything else is sent as `system`.
    _SUPPORTED_ROLES = frozenset({"system", "user", "assistant"})

    @property
    def capabilities(self) -> LLMCapabilities:
        return self._CAPABILITIES

    def _build_request(
        self,
        system_prompt: str,
        opts: CompletionOptions,
        *,
        model: str,
        attempt: int,
        stream: bool,
    ) -> ProviderRequest:
        optimizations: list[str] = []
        messages, prefill = self._build_messages(
            system_prompt,
            opts,
            attempt=attempt,
            optimizations=optimizations,
        )
        payload: dict[str, Any] = {"model": model}
        payload.update(
            self._sampling_params(
                system_prompt,
                opts,
                model=model,
                optimizations=optimizations,
            )
        )

        response_format = self._response_format(opts, optimizations)
        if response_format is not None:
            payload["response_format"] = response_format
            if response_format.get("type") == "json_object":
                messages = self._ensure_json_keyword(messages, optimizations)

        payload["messages"] = messages
        if stream:
            payload["stream"] = True

        return ProviderRequest(
            url=f"{self.config.base_url}/chat/completions",
            headers={
                "Authorization": f"Bearer {self.config.api_key}",
                "Content-Type": "application/json",
            },
            payload=payload,
            prefill=prefill,
            optimizations=optimizations,
        )

    def _build_messages(
        self,
        system_prompt: str,
        opts: CompletionOptions,
        *,
        attempt: int,
        optimizations: list[str],
    ) -> tuple[list[dict[str, str]], str | None]:
        """Return the turn list and the assistant prefill (if any) for one attempt."""
        return self._base_messages(system_prompt, opts), None

    def _base_messages(self, system_prompt: str, opts: CompletionOptions) -> list[dict[str, str]]:
        """
        Caller-supplied `messages` are used as the whole conversation.
        Otherwise build `[system?, user]`; an empty system prompt is omitted.
        """
        if opts.messages is not None:
            return [self._message_dict(m) for m in opts.messages]

        messages: list[dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": self._user_content(opts.user_message)})
        return messages

    def _user_content(self, user_message: str | None) -> str:
        if user_message is None or not user_message.strip():
            return EMPTY_USER_MESSAGE
        return user_message

    def _message_dict(self, message: Message) -> dict[str, str]:
        role = message.role if message.role in self._SUPPORTED_ROLES else "system"
        return {"role": role, "content": message.content}

    def _sampling_params(
        self,
        system_prompt: str,
        opts: CompletionOptions,
        *,
        model: str,
        optimizations: list[str],
    ) -> dict[str, Any]:
        params: dict[str, Any] = {}
        if opts.temperature is not None:
            params["temperature"] = opts.temperature
        if opts.max_tokens is not None:
            params["max_tokens"] = opts.max_tokens
        if opts.top_p is not None:
            params["top_p"] = opts.top_p
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
        """
        Provider-native `response_format` passes through untouched; then a
        schema; then loose JSON mode. Arrays never use `json_object`, which
        only admits a top-level object.
        """
        if opts.response_format:
            return dict(opts.response_format)
        if opts.schema is not None:
            resolved = resolve_schema(opts.schema)
            return {
                "type": "json_schema",
                "json_schema": {"name": resolved.name, "schema": resolved.schema},
            }
        if opts.json_mode and not opts.is_array:
            return {"type": "json_object"}
        return None

    def _ensure_json_keyword(
        self,
        messages: list[dict[str, str]],
        optimizations: list[str],
    ) -> list[dict[str, str]]:
        """`json_object` mode is rejected unless some turn mentions JSON."""
        if any(_JSON_WORD_RE.search(m.get("content", "")) for m in messages):
            return messages

        optimizations.append("json_keyword")
        if messages and messages[0]["role"] == "system":
            first = messages[0]
            return [
                {"role": "system", "content": JSON_KEYWORD_PREFIX + first["content"]},
                *messages[1:],
            ]
        return [{"role": "system", "content": JSON_KEYWORD_PREFIX.strip()}, *messages]

    def _default_max_tokens(self, opts: CompletionOptions, *, structured_default: int, free_default: int) -> int:
        size = opts.expected_output_size
        structured = opts.structured_output
        if size in MAX_TOKEN_PRESETS:
            structured_limit, free_limit = MAX_TOKEN_PRESETS[size]
            return structured_limit if structured else free_limit
        return structured_default if structured else free_default

    def _clean_text(self, text: str) -> str:
        return text

    def _normalize_response(
        self,
        data: dict[str, Any],
        opts: CompletionOptions,
        request: ProviderRequest,
        *,
        model: str,
    ) -> CompletionResult:
        choice = first_choice(data)
        message = choice.get("message")
        if not isinstance(message, dict):
            message = {}
        text = self._clean_text(extract_text_from_content(message.get("content")))

        logprobs = extract_chat_logprobs(choice)
        finish_reason = choice.get("finish_reason")
        fingerprint = data.get("system_fingerprint")
        response_model = data.get("model")

        return CompletionResult(
            text=text,
            metadata=CompletionMetadata(
                provider=self.provider_id,
                model=response_model if isinstance(response_model, str) else model,
                usage=extract_usage(data),
                finish_reason=finish_reason if isinstance(finish_reason, str) else None,
                logprobs=logprobs,
                average_confidence=average_confidence(logprobs),
                system_fingerprint=fingerprint if isinstance(fingerprint, str) else None,
                optimizations=list(request.optimizations),
                raw=data,
            ),
        )

    def _extract_stream_text(self, event: dict[str, Any]) -> str | None:
        delta = first_choice(event).get("delta")
        if not isinstance(delta, dict):
            return None
        content = delta.get("content")
        return content if isinstance(content, str) and content else None
