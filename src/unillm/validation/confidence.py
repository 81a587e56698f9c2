from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Token-probability summaries for completions requested with logprobs.
"""

import math
from typing import Iterable

from ..types import ConfidenceSummary, TokenLogprob

LOW_CONFIDENCE_THRESHOLD = 0.5


def to_token_logprob(token: str, logprob: float) -> TokenLogprob:
    return TokenLogprob(token=token, logprob=logprob, probability=math.exp(logprob))


def score_logprobs(
    entries: Iterable[TokenLogprob | tuple[str, float]],
    *,
    threshold: float = LOW_CONFIDENCE_THRESHOLD,
) -> ConfidenceSummary:
    probabilities: list[float] = []
    for entry in entries:
        if isinstance(entry, TokenLogprob):
            probabilities.append(math.exp(entry.logprob))
        else:
            _, logprob = entry
            probabilities.append(math.exp(logprob))

    if not probabilities:
        return ConfidenceSummary()

    return ConfidenceSummary(
        mean=sum(probabilities) / len(probabilities),
        min=min(probabilities),
        max=max(probabilities),
        low_confidence_count=sum(1 for p in probabilities if p < threshold),
        token_count=len(probabilities),
    )
