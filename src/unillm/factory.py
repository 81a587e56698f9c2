from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Factory utilities for constructing concrete provider adapters.
"""

import os
from typing import TYPE_CHECKING, Callable

import httpx

from .config import AdapterConfig
from .errors import LLMConfigurationError
from .observability import LLMObserver

if TYPE_CHECKING:
    from .llm import LLM


AdapterFactory = Callable[
    [AdapterConfig, "httpx.AsyncBaseTransport | None", "list[LLMObserver] | None"],
    "LLM",
]
_BUILTIN_ADAPTERS = {"openai", "gemini", "groq-llama", "groq-qwen"}
_ALIASES = {"groq": "groq-llama"}
_REGISTRY: dict[str, AdapterFactory] = {}


def _normalize_key(name: str) -> str:
    key = name.strip().lower().replace("_", "-")
    return _ALIASES.get(key, key)


def register_llm_adapter(
    name: str,
    factory: AdapterFactory,
    *,
    overwrite: bool = False,
) -> None:
    """Register a custom adapter factory by name."""
    key = _normalize_key(name)
    if not key:
        raise ValueError("Adapter name must be non-empty")

    if (not overwrite) and key in _REGISTRY:
        raise ValueError(f"Adapter already registered: {key}")

    _REGISTRY[key] = factory


def available_llm_adapters() -> list[str]:
    """Return built-in and runtime-registered adapter names."""
    return sorted(set(_BUILTIN_ADAPTERS) | set(_REGISTRY.keys()))


def create_llm(
    adapter: str,
    *,
    config: AdapterConfig | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    observers: list[LLMObserver] | None = None,
) -> "LLM":
    """Create an adapter instance for a provider id (or registered name)."""
    key = _normalize_key(adapter)
    if not key:
        raise LLMConfigurationError("Adapter name must be non-empty")

    factory = _REGISTRY.get(key) or _builtin_factory(key)
    cfg = config or AdapterConfig.from_env(key)
    return factory(cfg, transport, observers)


def create_llm_from_env(
    *,
    config: AdapterConfig | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    observers: list[LLMObserver] | None = None,
) -> "LLM":
    """Create an adapter using `UNILLM_ADAPTER` (defaults to `openai`)."""
    adapter = os.getenv("UNILLM_ADAPTER", "openai")
    return create_llm(adapter, config=config, transport=transport, observers=observers)


def _builtin_factory(adapter: str) -> AdapterFactory:
    """Resolve built-in adapter factories lazily."""
    if adapter == "openai":
        from .clients.adapters.openai import OpenAIClient

        return lambda cfg, transport, observers: OpenAIClient(
            cfg, transport=transport, observers=observers
        )

    if adapter == "gemini":
        from .clients.adapters.gemini import GeminiClient

        return lambda cfg, transport, observers: GeminiClient(
            cfg, transport=transport, observers=observers
        )

    if adapter == "groq-llama":
        from .clients.adapters.groq_llama import GroqLlamaClient

        return lambda cfg, transport, observers: GroqLlamaClient(
            cfg, transport=transport, observers=observers
        )

    if adapter == "groq-qwen":
        from .clients.adapters.groq_qwen import GroqQwenClient

        return lambda cfg, transport, observers: GroqQwenClient(
            cfg, transport=transport, observers=observers
        )

    raise LLMConfigurationError(
        f"Unknown LLM adapter '{adapter}'. Available: {', '.join(available_llm_adapters())}"
    )
