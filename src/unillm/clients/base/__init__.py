"""Reusable adapter base classes."""

from .chat_completions import ChatCompletionsClientBase

__all__ = ["ChatCompletionsClientBase"]
