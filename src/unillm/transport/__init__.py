"""Transport helpers: deadlines, cancellation and stream decoding."""

from .cancellation import AbortState, run_with_deadline
from .sse import SSEDecoder

__all__ = ["AbortState", "run_with_deadline", "SSEDecoder"]
