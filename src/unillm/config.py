from __future__ import annotations
import os

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

"""
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ProviderDefaults:
    base_url: str
    default_model: str
    api_key_env: tuple[str, ...]


GROQ_BASE_URL = "https://api.groq.com/openai/v1"

PROVIDER_DEFAULTS: dict[str, ProviderDefaults] = {
    "openai": ProviderDefaults(
        base_url="https://api.openai.com/v1",
        default_model="gpt-4o-2024-08-06",
        api_key_env=("OPENAI_API_KEY",),
    ),
    "gemini": ProviderDefaults(
        base_url="https://generativelanguage.googleapis.com/v1beta",
        default_model="gemini-2.5-flash",
        api_key_env=("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    ),
    "groq-llama": ProviderDefaults(
        base_url=GROQ_BASE_URL,
        default_model="llama-3.1-8b-instant",
        api_key_env=("GROQ_API_KEY",),
    ),
    "groq-qwen": ProviderDefaults(
        base_url=GROQ_BASE_URL,
        default_model="qwen/qwen3-32b",
        api_key_env=("GROQ_API_KEY",),
    ),
}


@dataclass(frozen=True, slots=True)
class AdapterConfig:
    # Connection
    api_key: str
    base_url: str
    default_model: str

    # Reliability
    default_timeout_s: float = 30.0
    max_retries: int = 2
    backoff_base_s: float = 0.5
    backoff_jitter_s: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "base_url", (self.base_url or "").rstrip("/"))

    @staticmethod
    def for_provider(provider: str, **overrides) -> "AdapterConfig":
        """Build a config from the built-in defaults of `provider`."""
        defaults = PROVIDER_DEFAULTS.get(provider)
        values = {
            "api_key": "",
            "base_url": defaults.base_url if defaults else "",
            "default_model": defaults.default_model if defaults else "",
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return AdapterConfig(**values)

    @staticmethod
    def from_env(provider: str) -> "AdapterConfig":
        defaults = PROVIDER_DEFAULTS.get(provider)
        prefix = "UNILLM_" + provider.upper().replace("-", "_")

        api_key = ""
        for name in defaults.api_key_env if defaults else ():
            api_key = os.getenv(name, "")
            if api_key:
                break

        return AdapterConfig.for_provider(
            provider,
            api_key=os.getenv(f"{prefix}_API_KEY") or api_key,
            base_url=os.getenv(f"{prefix}_BASE_URL"),
            default_model=os.getenv(f"{prefix}_MODEL"),
            default_timeout_s=float(os.getenv("UNILLM_TIMEOUT_S", "30")),
            max_retries=int(os.getenv("UNILLM_MAX_RETRIES", "2")),
            backoff_base_s=float(os.getenv("UNILLM_BACKOFF_BASE_S", "0.5")),
            backoff_jitter_s=float(os.getenv("UNILLM_BACKOFF_JITTER_S", "0")),
        )
