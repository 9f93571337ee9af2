"""
Disk-backed TTL cache for lookup payloads.

Each entry lives in its own JSON file named after its key inside a
single cache directory::

    {"key": "...", "created_at": 1718000000.0, "payload": {...}}

Writes go to a temporary file in the same directory and are moved
into place with :func:`os.replace`, so a reader sees either the old
record or the new one and never a half-written file.  Records that
cannot be decoded are deleted on sight and reported as a miss.

The cache is an optimisation.  Storage faults are logged and turned
into misses or no-ops; they are never raised to callers.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Tuple

logger = logging.getLogger(__name__)

_SAFE_KEY_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")
_RECORD_SUFFIX = ".json"
_TMP_PREFIX = ".tmp-"


class ExpiryMode(str, Enum):
    TTL = "ttl"
    NEVER = "never"    # every entry is valid regardless of age
    ALWAYS = "always"  # every entry is treated as expired


@dataclass(frozen=True)
class CachePolicy:
    """How entry age maps to validity.

    Attributes:
        ttl_seconds: Age at which an entry expires under ``ExpiryMode.TTL``.
        mode: ``TTL`` for normal operation; ``NEVER`` or ``ALWAYS`` force
            every entry valid or expired irrespective of age.
    """

    ttl_seconds: float = 30 * 24 * 3600
    mode: ExpiryMode = ExpiryMode.TTL

    @classmethod
    def from_hours(cls, hours: float, mode: Optional[ExpiryMode] = None) -> "CachePolicy":
        """Build a policy from an hour count; ``0`` hours means never expire."""
        if mode is None:
            mode = ExpiryMode.NEVER if hours == 0 else ExpiryMode.TTL
        return cls(ttl_seconds=float(hours) * 3600, mode=mode)

    def is_expired(self, created_at: float, now: float) -> bool:
        if self.mode is ExpiryMode.NEVER:
            return False
        if self.mode is ExpiryMode.ALWAYS:
            return True
        return now - created_at >= self.ttl_seconds


@dataclass(frozen=True)
class CacheStats:
    entries: int
    valid: int
    expired: int
    total_bytes: int

    @property
    def total_mb(self) -> float:
        return round(self.total_bytes / (1024 * 1024), 2)


class CacheStore:
    """Content-keyed JSON cache with a per-store expiry policy."""

    def __init__(
        self,
        cache_dir: str | os.PathLike[str],
        policy: Optional[CachePolicy] = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self._policy = policy or CachePolicy()
        self._clock = clock
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.warning("Unable to create cache directory %s: %s", self.cache_dir, exc)

    @property
    def policy(self) -> CachePolicy:
        return self._policy

    def set_policy(self, policy: CachePolicy) -> None:
        """Swap the expiry policy; readers see either the old or the new one."""
        self._policy = policy

    # ------------------------------------------------------------------
    # Record helpers
    # ------------------------------------------------------------------

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY_RE.match(key):
            raise ValueError(f"Unsafe cache key: {key!r}")
        return self.cache_dir / f"{key}{_RECORD_SUFFIX}"

    def _iter_records(self) -> Iterator[Path]:
        try:
            paths = sorted(self.cache_dir.glob(f"*{_RECORD_SUFFIX}"))
        except OSError as exc:
            logger.warning("Unable to list cache directory %s: %s", self.cache_dir, exc)
            return iter(())
        return (p for p in paths if not p.name.startswith(_TMP_PREFIX))

    @staticmethod
    def _read_record(path: Path) -> Tuple[float, Any]:
        """Return ``(created_at, payload)``; raises ``ValueError`` on corruption."""
        with open(path, "r", encoding="utf-8") as f:
            record = json.load(f)
        if not isinstance(record, dict) or "payload" not in record:
            raise ValueError("record has no payload")
        created_at = record.get("created_at")
        if not isinstance(created_at, (int, float)):
            raise ValueError("record has no numeric created_at")
        return float(created_at), record["payload"]

    def _remove(self, path: Path) -> bool:
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.warning("Unable to remove cache record %s: %s", path.name, exc)
            return False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[Any]:
        """Return the cached payload for ``key`` or ``None`` if absent/expired.

        A record that cannot be decoded is deleted and reported as a miss.
        """
        policy = self._policy
        try:
            path = self._path(key)
        except ValueError as exc:
            logger.warning("%s", exc)
            return None
        try:
            created_at, payload = self._read_record(path)
        except FileNotFoundError:
            logger.debug("Cache MISS %s", key)
            return None
        except (ValueError, UnicodeDecodeError) as exc:
            logger.warning("Corrupt cache record %s (%s); removing", key, exc)
            self._remove(path)
            return None
        except OSError as exc:
            logger.warning("Unable to read cache record %s: %s", key, exc)
            return None
        if policy.is_expired(created_at, self._clock()):
            logger.debug("Cache EXPIRED %s", key)
            return None
        logger.debug("Cache HIT %s", key)
        return payload

    def put(self, key: str, payload: Any) -> bool:
        """Persist ``payload`` under ``key``, replacing any prior entry.

        Returns:
            True if the record was written, False if the write was skipped
            because of a storage or serialisation fault.
        """
        try:
            path = self._path(key)
            body = json.dumps({"key": key, "created_at": self._clock(), "payload": payload}, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            logger.warning("Not caching %s: %s", key, exc)
            return False
        tmp_name: Optional[str] = None
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=_TMP_PREFIX, suffix=_RECORD_SUFFIX, dir=self.cache_dir)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(body)
            os.replace(tmp_name, path)
        except OSError as exc:
            logger.warning("Unable to write cache record %s: %s", key, exc)
            if tmp_name is not None:
                self._remove(Path(tmp_name))
            return False
        logger.debug("Cache WRITE %s (%d bytes)", key, len(body))
        return True

    def invalidate(self, key: str) -> bool:
        """Remove a single entry.  Returns True if a record was deleted."""
        try:
            return self._remove(self._path(key))
        except ValueError:
            return False

    def invalidate_expired(self) -> int:
        """Remove expired and undecodable records; returns the number removed."""
        policy = self._policy
        now = self._clock()
        removed = 0
        for path in self._iter_records():
            try:
                created_at, _ = self._read_record(path)
            except FileNotFoundError:
                continue
            except (OSError, ValueError, UnicodeDecodeError):
                removed += int(self._remove(path))
                continue
            if policy.is_expired(created_at, now):
                removed += int(self._remove(path))
        logger.info("Removed %d expired cache records from %s", removed, self.cache_dir)
        return removed

    def clear_all(self, prefix: Optional[str] = None) -> int:
        """Remove every record (optionally only keys starting with ``prefix``)."""
        removed = 0
        for path in self._iter_records():
            if prefix and not path.name.startswith(f"{prefix}_"):
                continue
            removed += int(self._remove(path))
        logger.info("Cleared %d cache records from %s", removed, self.cache_dir)
        return removed

    def stats(self) -> CacheStats:
        """Count entries and split them into valid and expired."""
        policy = self._policy
        now = self._clock()
        entries = valid = expired = total_bytes = 0
        for path in self._iter_records():
            try:
                total_bytes += path.stat().st_size
                created_at, _ = self._read_record(path)
            except FileNotFoundError:
                continue
            except (OSError, ValueError, UnicodeDecodeError):
                entries += 1
                expired += 1
                continue
            entries += 1
            if policy.is_expired(created_at, now):
                expired += 1
            else:
                valid += 1
        return CacheStats(entries=entries, valid=valid, expired=expired, total_bytes=total_bytes)
