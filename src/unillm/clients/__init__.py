"""LLM client package.

Structure:
- `adapters/`: provider-specific adapter implementations
- `base/`: reusable adapter base classes
- `shared/`: reusable normalization/mapping utilities
"""

from .adapters import GeminiClient, GroqLlamaClient, GroqQwenClient, OpenAIClient
from .base import ChatCompletionsClientBase

__all__ = [
    "ChatCompletionsClientBase",
    "OpenAIClient",
    "GeminiClient",
    "GroqLlamaClient",
    "GroqQwenClient",
]
