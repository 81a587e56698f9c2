"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

unillm: one completion contract over OpenAI, Gemini and Groq-hosted models.
"""

from .config import PROVIDER_DEFAULTS, AdapterConfig
from .errors import (
    LLMAPIError,
    LLMClientAbortError,
    LLMConfigurationError,
    LLMError,
    LLMInvalidRequestError,
    LLMInvalidResponseError,
    LLMTimeoutError,
    LLMTransportError,
)
from .factory import (
    available_llm_adapters,
    create_llm,
    create_llm_from_env,
    register_llm_adapter,
)
from .llm import LLM, ProviderRequest
from .observability import LLMLifecycleEvent, LLMObserver
from .types import (
    CompletionMetadata,
    CompletionOptions,
    CompletionResult,
    HealthStatus,
    LLMCapabilities,
    Message,
    TokenLogprob,
    Usage,
    ValidationReport,
)
from .validation import repair_json, score_logprobs, validate_response

__all__ = [
    "AdapterConfig",
    "PROVIDER_DEFAULTS",
    "LLM",
    "ProviderRequest",
    "CompletionOptions",
    "CompletionResult",
    "CompletionMetadata",
    "HealthStatus",
    "LLMCapabilities",
    "Message",
    "TokenLogprob",
    "Usage",
    "ValidationReport",
    "LLMLifecycleEvent",
    "LLMObserver",
    "LLMError",
    "LLMAPIError",
    "LLMClientAbortError",
    "LLMConfigurationError",
    "LLMInvalidRequestError",
    "LLMInvalidResponseError",
    "LLMTimeoutError",
    "LLMTransportError",
    "create_llm",
    "create_llm_from_env",
    "register_llm_adapter",
    "available_llm_adapters",
    "validate_response",
    "repair_json",
    "score_logprobs",
]
