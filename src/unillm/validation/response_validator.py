from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Descriptive validation of raw model output.

`validate_response` never raises: every finding is reported in the returned
`ValidationReport` and the caller decides whether to retry, accept or fail.
"""
import json
import re
from typing import Any

from pydantic import BaseModel

from ..structured import validate_with_model
from ..types import ValidationReport

REFUSAL_WINDOW = 500
CONTEXT_CHARS = 20

REFUSAL_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bI(?:'m| am) (?:sorry|afraid|unable|not able)\b",
        r"\bI (?:cannot|can't|can not|won't|will not) (?:help|assist|comply|provide|fulfill|do that|generate|create)\b",
        r"\bI must (?:decline|refuse)\b",
        r"\bas an AI(?: language model| assistant)?\b",
        r"\bagainst my (?:guidelines|policies|policy|programming)\b",
        r"\bI(?:'m| am) not (?:allowed|permitted)\b",
    )
)

_PREAMBLE_RE = re.compile(
    r"^(?:here(?:'s| is| are)\b|sure\b|certainly\b|of course\b|absolutely\b|"
    r"below is\b|okay\b|ok\b|great\b|the (?:json|response|result|output) (?:is|follows)\b)",
    re.IGNORECASE,
)
_POSTAMBLE_RE = re.compile(
    r"^(?:i hope\b|hope this helps\b|let me know\b|note:|feel free\b|"
    r"if you (?:need|have|want)\b|this (?:json|response|output)\b)",
    re.IGNORECASE,
)
_FULL_FENCE_RE = re.compile(r"^(```|~~~)[\w+-]*[ \t]*\n(.*?)\n?\1\s*$", re.DOTALL)

_OPENERS = {"{": "}", "[": "]"}


def _strip_wrappers(text: str) -> tuple[str, bool, bool, float, list[str]]:
    """Remove conversational lead-ins/trailers and code fences from both ends."""
    confidence = 1.0
    warnings: list[str] = []
    has_preamble = False
    has_postamble = False

    lines = text.split("\n")
    while len(lines) > 1:
        first = lines[0].strip()
        # A lead-in sharing its line with the payload is left for _locate_json.
        if first and not any(c in first for c in _OPENERS) and _PREAMBLE_RE.match(first):
            lines.pop(0)
            has_preamble = True
            confidence *= 0.9
            warnings.append(f"Stripped preamble: {first[:60]!r}")
            continue
        break

    while len(lines) > 1:
        last = lines[-1].strip()
        if not last:
            lines.pop()
            continue
        if _POSTAMBLE_RE.match(last):
            lines.pop()
            has_postamble = True
            confidence *= 0.9
            warnings.append(f"Stripped postamble: {last[:60]!r}")
            continue
        break

    cleaned = "\n".join(lines).strip()

    fence = _FULL_FENCE_RE.match(cleaned)
    if fence:
        cleaned = fence.group(2).strip()
        confidence *= 0.95
        warnings.append("Unwrapped code fence")
        return cleaned, has_preamble, has_postamble, confidence, warnings

    if cleaned.startswith(("```", "~~~")):
        _, _, rest = cleaned.partition("\n")
        cleaned = rest.strip()
        has_preamble = True
        confidence *= 0.9
        warnings.append("Stripped opening code fence")
    if cleaned.endswith(("```", "~~~")):
        cleaned = cleaned[:-3].rstrip()
        has_postamble = True
        confidence *= 0.9
        warnings.append("Stripped closing code fence")

    return cleaned, has_preamble, has_postamble, confidence, warnings


def _locate_json(text: str, expect_array: bool) -> tuple[int, int, str] | None:
    """
    Return `(start, end, opener)` for the outermost JSON structure.

    The expected kind wins unless a structure of the other kind encloses it.
    """
    want = "[" if expect_array else "{"
    other = "{" if expect_array else "["

    def _bounds(opener: str) -> tuple[int, int] | None:
        start = text.find(opener)
        if start == -1:
            return None
        end = text.rfind(_OPENERS[opener])
        return start, (end + 1 if end > start else len(text))

    wanted = _bounds(want)
    alt = _bounds(other)

    if wanted is None and alt is None:
        return None
    if wanted is None:
        return alt[0], alt[1], other
    if alt is not None and alt[0] < wanted[0] and alt[1] >= wanted[1]:
        return alt[0], alt[1], other
    return wanted[0], wanted[1], want


def _resolve_path(value: Any, path: str) -> Any:
    current = value
    for part in path.split("."):
        if isinstance(current, dict):
            if part not in current:
                return None
            current = current[part]
        elif isinstance(current, list) and part.lstrip("-").isdigit():
            idx = int(part)
            if idx >= len(current) or idx < -len(current):
                return None
            current = current[idx]
        else:
            return None
    return current


def validate_response(
    text: str | None,
    *,
    expect_json: bool = True,
    expect_array: bool = False,
    required_fields: list[str] | None = None,
    min_length: int | None = None,
    max_length: int | None = None,
    response_model: type[BaseModel] | None = None,
) -> ValidationReport:
    if not text or not text.strip():
        return ValidationReport(
            is_valid=False,
            errors=["Empty response"],
            confidence=0.0,
            cleaned_text="",
        )

    stripped = text.strip()
    errors: list[str] = []
    warnings: list[str] = []
    confidence = 1.0
    is_truncated = False

    # JSON payloads may legitimately quote apologetic text.
    if not stripped.startswith(tuple(_OPENERS)):
        head = stripped[:REFUSAL_WINDOW]
        for pattern in REFUSAL_PATTERNS:
            match = pattern.search(head)
            if match:
                return ValidationReport(
                    is_valid=False,
                    errors=[f"Model refused the request: {match.group(0)!r}"],
                    confidence=0.1,
                    is_refusal=True,
                    cleaned_text=stripped,
                )

    if min_length is not None and len(stripped) < min_length:
        errors.append(f"Response shorter than minimum length ({len(stripped)} < {min_length})")
        confidence *= 0.5
    if max_length is not None and len(stripped) > max_length:
        warnings.append(
            f"Response longer than maximum length ({len(stripped)} > {max_length}); possibly truncated"
        )
        is_truncated = True
        confidence *= 0.8

    if not expect_json:
        return ValidationReport(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            confidence=confidence,
            is_truncated=is_truncated,
            cleaned_text=stripped,
        )

    cleaned, has_preamble, has_postamble, factor, strip_warnings = _strip_wrappers(stripped)
    confidence *= factor
    warnings.extend(strip_warnings)

    located = _locate_json(cleaned, expect_array)
    if located is None:
        errors.append("No JSON " + ("array" if expect_array else "object") + " found in response")
        return ValidationReport(
            is_valid=False,
            errors=errors,
            warnings=warnings,
            confidence=confidence * 0.3,
            is_truncated=is_truncated,
            has_preamble=has_preamble,
            has_postamble=has_postamble,
            cleaned_text=cleaned,
        )

    start, end, _ = located
    if cleaned[:start].strip():
        has_preamble = True
        confidence *= 0.9
        warnings.append("Text found before JSON payload")
    if cleaned[end:].strip():
        has_postamble = True
        confidence *= 0.9
        warnings.append("Text found after JSON payload")

    candidate = cleaned[start:end]
    parsed: Any = None
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        before = candidate[max(0, e.pos - CONTEXT_CHARS) : e.pos]
        after = candidate[e.pos : e.pos + CONTEXT_CHARS]
        errors.append(f"JSON parse error at position {e.pos}: {e.msg} (near {before!r} >>> {after!r})")
        if stripped.count("{") > stripped.count("}") or stripped.count("[") > stripped.count("]"):
            is_truncated = True
            warnings.append("Response appears truncated (unbalanced brackets)")
        return ValidationReport(
            is_valid=False,
            errors=errors,
            warnings=warnings,
            confidence=confidence * 0.3,
            is_truncated=is_truncated,
            has_preamble=has_preamble,
            has_postamble=has_postamble,
            cleaned_text=candidate,
        )

    if expect_array != isinstance(parsed, list):
        expected = "array" if expect_array else "object"
        found = "array" if isinstance(parsed, list) else "object" if isinstance(parsed, dict) else type(parsed).__name__
        errors.append(f"Type mismatch: expected JSON {expected}, found {found}")
        confidence *= 0.3

    if required_fields:
        missing = [p for p in required_fields if _resolve_path(parsed, p) is None]
        if missing:
            errors.append("Missing required fields: " + ", ".join(missing))
            confidence *= 0.5

    if response_model is not None:
        model_errors = validate_with_model(parsed, response_model)
        if model_errors:
            errors.extend(model_errors)
            confidence *= 0.5

    return ValidationReport(
        is_valid=not errors,
        errors=errors,
        warnings=warnings,
        confidence=confidence,
        is_truncated=is_truncated,
        has_preamble=has_preamble,
        has_postamble=has_postamble,
        parsed=parsed,
        cleaned_text=candidate,
    )
