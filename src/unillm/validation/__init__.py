"""Response validation, JSON repair and token-confidence scoring."""

from .confidence import score_logprobs, to_token_logprob
from .json_repair import repair_json
from .response_validator import validate_response

__all__ = [
    "validate_response",
    "repair_json",
    "score_logprobs",
    "to_token_logprob",
]
