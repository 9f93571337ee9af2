"""
Cache key derivation.

Keys are built from the logical parameters of a lookup rather than
from the raw request, so that two requests for the same thing issued
with cosmetically different text land on the same cache entry.  The
normalised form is hashed to give a fixed-length, filesystem-safe
name, and prefixed with the collaborator name so many adapters can
share one store directory without colliding.
"""

from __future__ import annotations

import hashlib
import json
import re
from typing import Any, Mapping

_WS_RE = re.compile(r"\s+")
_PREFIX_RE = re.compile(r"[^a-z0-9_-]+")


def normalize_text(value: str) -> str:
    """Case-fold and collapse runs of whitespace."""
    return _WS_RE.sub(" ", value.casefold()).strip()


def _normalize(value: Any) -> Any:
    if isinstance(value, str):
        return normalize_text(value)
    if isinstance(value, Mapping):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    return value


def normalize_params(params: Any) -> str:
    """Render lookup parameters as a canonical string.

    Strings are case-folded and whitespace-collapsed, mappings are
    serialised with sorted keys, and sequences keep their order.
    """
    return json.dumps(_normalize(params), sort_keys=True, separators=(",", ":"), default=str)


def make_key(prefix: str, params: Any) -> str:
    """Build a cache key of the form ``<prefix>_<sha256 hex>``.

    Args:
        prefix: Collaborator or lookup-type name, e.g. ``"serpapi_scholar"``.
        params: Any JSON-friendly value identifying the lookup (a query
            string, an entity id, or a mapping of request parameters).

    Returns:
        A deterministic key that is safe to use as a filename.
    """
    safe_prefix = _PREFIX_RE.sub("_", prefix.lower()).strip("_") or "cache"
    digest = hashlib.sha256(normalize_params(params).encode("utf-8")).hexdigest()
    return f"{safe_prefix}_{digest[:32]}"
