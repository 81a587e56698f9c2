from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Best-effort repair of almost-JSON model output.

Repair is opt-in: the validator never calls it. The heuristics improve the
odds of a successful parse but do not guarantee one.
"""
import json
import re

from ..types import RepairResult

_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_MISSING_OBJECT_COMMA_RE = re.compile(r"}(\s*){")
_MISSING_ARRAY_COMMA_RE = re.compile(r"](\s*)\[")
_SINGLE_QUOTED_KEY_RE = re.compile(r"([{,]\s*)'([^'\\\n]*)'(\s*:)")
_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_$][\w$-]*)(\s*:)")


def _parses(text: str) -> bool:
    try:
        json.loads(text)
    except ValueError:
        return False
    return True


def _split_strings(text: str) -> tuple[list[tuple[str, bool]], bool]:
    """
    Split `text` into `(segment, is_string_literal)` runs, honouring escapes.

    The second value is True when the text ends inside an unterminated string.
    """
    segments: list[tuple[str, bool]] = []
    start = 0
    in_string = False
    escape = False
    for i, ch in enumerate(text):
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                segments.append((text[start : i + 1], True))
                start = i + 1
                in_string = False
        elif ch == '"':
            if i > start:
                segments.append((text[start:i], False))
            start = i
            in_string = True
    if start < len(text):
        segments.append((text[start:], in_string))
    return segments, in_string


def _subn_outside_strings(pattern: re.Pattern[str], repl: str, text: str) -> tuple[str, int]:
    segments, _ = _split_strings(text)
    parts: list[str] = []
    total = 0
    for segment, is_string in segments:
        if not is_string:
            segment, n = pattern.subn(repl, segment)
            total += n
        parts.append(segment)
    return "".join(parts), total


def _missing_closers(text: str) -> str:
    """Closers needed to balance `text`, ignoring brackets inside strings."""
    segments, unterminated = _split_strings(text)
    stack: list[str] = []
    for segment, is_string in segments:
        if is_string:
            continue
        for ch in segment:
            if ch == "{":
                stack.append("}")
            elif ch == "[":
                stack.append("]")
            elif ch in "}]" and stack and stack[-1] == ch:
                stack.pop()

    closers = "".join(reversed(stack))
    # An unterminated string must be closed before its containers.
    return ('"' if unterminated else "") + closers


def repair_json(text: str) -> RepairResult:
    if _parses(text):
        return RepairResult(text=text, changes=[])

    changes: list[str] = []
    repaired = text

    repaired, n = _subn_outside_strings(_TRAILING_COMMA_RE, r"\1", repaired)
    if n:
        changes.append(f"Removed {n} trailing comma(s)")

    repaired, n_obj = _subn_outside_strings(_MISSING_OBJECT_COMMA_RE, r"},\1{", repaired)
    repaired, n_arr = _subn_outside_strings(_MISSING_ARRAY_COMMA_RE, r"],\1[", repaired)
    if n_obj or n_arr:
        changes.append(f"Inserted {n_obj + n_arr} missing comma(s) between adjacent values")

    repaired, n = _subn_outside_strings(_SINGLE_QUOTED_KEY_RE, r'\1"\2"\3', repaired)
    if n:
        changes.append(f"Converted {n} single-quoted key(s) to double quotes")

    repaired, n = _subn_outside_strings(_BARE_KEY_RE, r'\1"\2"\3', repaired)
    if n:
        changes.append(f"Quoted {n} bare key(s)")

    closers = _missing_closers(repaired)
    if closers:
        repaired = repaired.rstrip().rstrip(",") + closers
        changes.append(f"Appended missing closer(s): {closers}")

    return RepairResult(text=repaired, changes=changes)
