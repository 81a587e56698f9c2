from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

This module defines custom exceptions for error handling in the unillm package.
"""


class LLMError(Exception):
    """Base exception for all unillm errors."""

    pass


class LLMConfigurationError(LLMError):
    pass


class LLMInvalidRequestError(LLMError):
    """Raised when completion options are rejected before any network I/O."""

    pass


class LLMAPIError(LLMError):
    """
    The provider answered with a non-success HTTP status.

    Rate limits (429) and server errors (5xx) are retryable; every other
    status is final.
    """

    def __init__(self, provider: str, status_code: int, body: str = "") -> None:
        self.provider = provider
        self.status_code = status_code
        self.body = body
        self.retryable = is_retryable_status(status_code)
        super().__init__(f"{provider} API error: {status_code} - {body}")


class LLMTimeoutError(LLMError):
    """Raised when one attempt exceeds its deadline."""

    def __init__(self, provider: str, timeout_s: float) -> None:
        self.provider = provider
        self.timeout_s = timeout_s
        super().__init__(
            f"{provider} request timeout after {int(round(timeout_s * 1000))}ms"
        )


class LLMClientAbortError(LLMError):
    """Raised when the caller's cancellation signal fires. Never retried."""

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"{provider} request aborted by client")


class LLMTransportError(LLMError):
    """Connection or protocol failure below the HTTP layer."""

    pass


class LLMInvalidResponseError(LLMError):
    """
    The provider returned a success status with a body we couldn't decode.
    """

    pass


def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or 500 <= status_code < 600
