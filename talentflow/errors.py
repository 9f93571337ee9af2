"""
Error taxonomy for external lookups.

Every failure observed while talking to a remote collaborator is
classified once, at the point it is first seen, into one of the
classes below.  Two branches matter to the rest of the package:

* :class:`CriticalError` – throttling, quota exhaustion or loss of
  connectivity.  These propagate unchanged through stage transforms
  and abort the whole funnel run, because every remaining candidate
  would hit the same wall.
* :class:`NonCriticalError` – the collaborator answered but had
  nothing useful (not found, empty, unparseable).  Lookup adapters
  absorb these and hand back an empty payload instead.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Stable identifiers reported to callers."""

    RATE_LIMITED = "rate_limit"
    QUOTA_EXCEEDED = "quota_exceeded"
    SERVICE_UNAVAILABLE = "service_unavailable"
    TIMEOUT = "timeout"
    NOT_FOUND = "not_found"
    EMPTY_RESULT = "empty_result"
    MALFORMED = "malformed_response"


# Suggested wait before retrying a whole run, in seconds.
THROTTLE_RETRY_AFTER = 3600
CONNECTIVITY_RETRY_AFTER = 300


class EnrichmentError(Exception):
    """Base class for classified lookup failures."""

    kind: ErrorKind = ErrorKind.SERVICE_UNAVAILABLE
    critical: bool = False

    def __init__(self, message: str, *, service: str = "unknown") -> None:
        super().__init__(message)
        self.message = message
        self.service = service

    def __str__(self) -> str:
        return f"{self.service}: {self.message}"


class CriticalError(EnrichmentError):
    """A failure that invalidates the entire run."""

    critical = True
    default_retry_after: int = CONNECTIVITY_RETRY_AFTER

    def __init__(self, message: str, *, service: str = "unknown", retry_after: Optional[int] = None) -> None:
        super().__init__(message, service=service)
        self.retry_after = retry_after if retry_after is not None else self.default_retry_after


class RateLimited(CriticalError):
    kind = ErrorKind.RATE_LIMITED
    default_retry_after = THROTTLE_RETRY_AFTER


class QuotaExceeded(CriticalError):
    kind = ErrorKind.QUOTA_EXCEEDED
    default_retry_after = THROTTLE_RETRY_AFTER


class ServiceUnavailable(CriticalError):
    kind = ErrorKind.SERVICE_UNAVAILABLE


class ConnectionReset(ServiceUnavailable):
    """Peer closed the connection early; the only class adapters retry."""


class LookupTimeout(CriticalError):
    kind = ErrorKind.TIMEOUT


class NonCriticalError(EnrichmentError):
    """The collaborator answered but produced no usable data."""

    critical = False


class NotFound(NonCriticalError):
    kind = ErrorKind.NOT_FOUND


class EmptyResult(NonCriticalError):
    kind = ErrorKind.EMPTY_RESULT


class MalformedResponse(NonCriticalError):
    """A response could not be decoded into the expected structure."""

    kind = ErrorKind.MALFORMED

    def __init__(self, reason: str, *, service: str = "unknown", raw_text: str = "") -> None:
        super().__init__(reason, service=service)
        self.reason = reason
        self.raw_text = raw_text


class ConfigError(ValueError):
    """Raised at startup when configuration values are unusable."""
