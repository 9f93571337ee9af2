"""Disk-backed response cache shared by all lookup adapters."""

from .keys import make_key, normalize_params, normalize_text
from .store import CachePolicy, CacheStats, CacheStore, ExpiryMode

__all__ = [
    "CachePolicy",
    "CacheStats",
    "CacheStore",
    "ExpiryMode",
    "make_key",
    "normalize_params",
    "normalize_text",
]
