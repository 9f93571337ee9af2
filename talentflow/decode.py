"""
Decoding of structured replies from text-generation models.

Models are asked for a JSON object but frequently wrap it in Markdown
fences, prepend reasoning, or emit near-JSON (Python booleans, trailing
commas, bare keys).  :func:`decode_json_reply` applies a fixed set of
structural repairs and returns a tagged result; it never guesses at
content beyond that.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Union

_THINK_RE = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_BOOL_RE = re.compile(r"\b(True|False|None)\b")
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)\s*:")

_PY_LITERALS = {"True": "true", "False": "false", "None": "null"}


@dataclass(frozen=True)
class Decoded:
    value: Any
    ok: bool = True


@dataclass(frozen=True)
class Malformed:
    raw_text: str
    reason: str
    ok: bool = False


DecodeResult = Union[Decoded, Malformed]


def _extract_object(text: str) -> str:
    """Return the outermost ``{...}`` span of ``text`` or ``""``."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return ""
    return text[start : end + 1]


def _repair(candidate: str) -> str:
    candidate = _BOOL_RE.sub(lambda m: _PY_LITERALS[m.group(1)], candidate)
    candidate = _TRAILING_COMMA_RE.sub(r"\1", candidate)
    candidate = _BARE_KEY_RE.sub(r'\1"\2":', candidate)
    return candidate


def decode_json_reply(text: str | None) -> DecodeResult:
    """Decode a model reply into a JSON object.

    The reply is tried verbatim first.  Failing that, reasoning blocks
    and code fences are stripped, the outermost object is extracted and
    a best-effort structural repair is applied.

    Args:
        text: Raw model output.

    Returns:
        ``Decoded(value)`` holding a ``dict`` on success, otherwise
        ``Malformed(raw_text, reason)`` explaining what went wrong.
    """
    if text is None or not text.strip():
        return Malformed(raw_text=text or "", reason="empty reply")

    try:
        value = json.loads(text)
    except ValueError:
        pass
    else:
        if isinstance(value, dict):
            return Decoded(value)
        return Malformed(raw_text=text, reason=f"expected a JSON object, got {type(value).__name__}")

    body = _THINK_RE.sub("", text)
    fence = _FENCE_RE.search(body)
    if fence:
        body = fence.group(1)
    candidate = _extract_object(body)
    if not candidate:
        return Malformed(raw_text=text, reason="no JSON object found in reply")

    for attempt in (candidate, _repair(candidate)):
        try:
            value = json.loads(attempt)
        except ValueError as exc:
            last_error = str(exc)
            continue
        if isinstance(value, dict):
            return Decoded(value)
        last_error = f"expected a JSON object, got {type(value).__name__}"
    return Malformed(raw_text=text, reason=f"unparseable JSON: {last_error}")
