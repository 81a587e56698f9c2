from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Google Gemini adapter speaking the native `generateContent` REST API.
"""

from typing import Any
from urllib.parse import quote

from ..base.chat_completions import EMPTY_USER_MESSAGE
from ..shared.normalization import average_confidence, extract_gemini_usage
from ...llm import LLM, ProviderRequest
from ...structured import inline_schema_refs, resolve_schema, strip_schema_keys
from ...types import (
    CompletionMetadata,
    CompletionOptions,
    CompletionResult,
    LLMCapabilities,
    TokenLogprob,
)
from ...validation.confidence import to_token_logprob

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_OUTPUT_TOKENS = 2048

# Keywords the Gemini schema dialect rejects.
UNSUPPORTED_SCHEMA_KEYS = (
    "$schema",
    "$id",
    "$ref",
    "$defs",
    "definitions",
    "additionalProperties",
    "strict",
    "title",
    "default",
    "examples",
)

_ROLE_MAP = {"user": "user", "assistant": "model"}


def normalize_gemini_schema(schema: dict[str, Any]) -> dict[str, Any]:
    return strip_schema_keys(inline_schema_refs(schema), UNSUPPORTED_SCHEMA_KEYS)


def _candidate(data: dict[str, Any]) -> dict[str, Any]:
    candidates = data.get("candidates")
    if isinstance(candidates, list) and candidates and isinstance(candidates[0], dict):
        return candidates[0]
    return {}


def _candidate_text(candidate: dict[str, Any]) -> str:
    content = candidate.get("content")
    if not isinstance(content, dict):
        return ""
    parts = content.get("parts")
    if not isinstance(parts, list):
        return ""
    return "".join(
        part["text"]
        for part in parts
        if isinstance(part, dict) and isinstance(part.get("text"), str) and not part.get("thought")
    )


def _candidate_logprobs(candidate: dict[str, Any]) -> list[TokenLogprob] | None:
    result = candidate.get("logprobsResult")
    if not isinstance(result, dict):
        return None
    chosen = result.get("chosenCandidates")
    if not isinstance(chosen, list):
        return None
    out: list[TokenLogprob] = []
    for item in chosen:
        if not isinstance(item, dict):
            continue
        token = item.get("token")
        logprob = item.get("logProbability")
        if isinstance(token, str) and isinstance(logprob, (int, float)):
            out.append(to_token_logprob(token, float(logprob)))
    return out


class GeminiClient(LLM):
    """Adapter for Google's Generative Language API."""

    _CAPABILITIES = LLMCapabilities(
        streaming=True,
        json_mode=True,
        structured_outputs=True,
        logprobs=True,
        seed=True,
    )

    health_check_timeout_s = 20.0
    stream_end_marker = None

    @property
    def provider_id(self) -> str:
        return "gemini"

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
        system_parts, contents = self._build_contents(system_prompt, opts)

        generation_config: dict[str, Any] = {
            "temperature": opts.temperature if opts.temperature is not None else DEFAULT_TEMPERATURE,
            "maxOutputTokens": opts.max_tokens if opts.max_tokens is not None else DEFAULT_MAX_OUTPUT_TOKENS,
        }
        if opts.top_p is not None:
            generation_config["topP"] = opts.top_p
        if opts.stop:
            generation_config["stopSequences"] = list(opts.stop)
        if opts.seed is not None:
            generation_config["seed"] = opts.seed
        if opts.logprobs:
            generation_config["responseLogprobs"] = True
            if opts.top_logprobs is not None:
                generation_config["logprobs"] = opts.top_logprobs

        if opts.structured_output:
            generation_config["responseMimeType"] = "application/json"
            if opts.schema is not None:
                generation_config["responseSchema"] = normalize_gemini_schema(
                    resolve_schema(opts.schema).schema
                )
                optimizations.append("response_schema")

        payload: dict[str, Any] = {
            "contents": contents,
            "generationConfig": generation_config,
        }
        if system_parts:
            payload["systemInstruction"] = {"parts": [{"text": "\n\n".join(system_parts)}]}

        action = "streamGenerateContent?alt=sse" if stream else "generateContent"
        return ProviderRequest(
            url=f"{self.config.base_url}/models/{quote(model, safe='')}:{action}",
            headers={
                "x-goog-api-key": self.config.api_key,
                "Content-Type": "application/json",
            },
            payload=payload,
            optimizations=optimizations,
        )

    def _build_contents(
        self,
        system_prompt: str,
        opts: CompletionOptions,
    ) -> tuple[list[str], list[dict[str, Any]]]:
        """Split the conversation into system instruction text and Gemini turns."""
        system_parts: list[str] = []
        if system_prompt:
            system_parts.append(system_prompt)
        if opts.developer_message:
            system_parts.append(opts.developer_message)

        contents: list[dict[str, Any]] = []
        if opts.messages is not None:
            for message in opts.messages:
                if message.role in ("system", "developer"):
                    system_parts.append(message.content)
                    continue
                contents.append(
                    {"role": _ROLE_MAP[message.role], "parts": [{"text": message.content}]}
                )
        else:
            user = opts.user_message
            text = user if user is not None and user.strip() else EMPTY_USER_MESSAGE
            contents.append({"role": "user", "parts": [{"text": text}]})

        if not contents:
            contents.append({"role": "user", "parts": [{"text": EMPTY_USER_MESSAGE}]})
        return system_parts, contents

    def _normalize_response(
        self,
        data: dict[str, Any],
        opts: CompletionOptions,
        request: ProviderRequest,
        *,
        model: str,
    ) -> CompletionResult:
        candidate = _candidate(data)
        finish_reason = candidate.get("finishReason")
        if not candidate:
            feedback = data.get("promptFeedback")
            if isinstance(feedback, dict):
                finish_reason = feedback.get("blockReason")

        logprobs = _candidate_logprobs(candidate)
        model_version = data.get("modelVersion")
        return CompletionResult(
            text=_candidate_text(candidate),
            metadata=CompletionMetadata(
                provider=self.provider_id,
                model=model_version if isinstance(model_version, str) else model,
                usage=extract_gemini_usage(data),
                finish_reason=finish_reason if isinstance(finish_reason, str) else None,
                logprobs=logprobs,
                average_confidence=average_confidence(logprobs),
                optimizations=list(request.optimizations),
                raw=data,
            ),
        )

    def _extract_stream_text(self, event: dict[str, Any]) -> str | None:
        return _candidate_text(_candidate(event)) or None
