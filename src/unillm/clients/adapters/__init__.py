"""Provider adapter implementations."""

from .gemini import GeminiClient
from .groq_llama import GroqLlamaClient
from .groq_qwen import GroqQwenClient
from .openai import OpenAIClient

__all__ = [
    "OpenAIClient",
    "GeminiClient",
    "GroqLlamaClient",
    "GroqQwenClient",
]
