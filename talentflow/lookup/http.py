"""
HTTP helpers that classify failures where they are first observed.

Every collaborator that speaks JSON over HTTP goes through
:func:`request_json`.  Status codes and transport exceptions are
mapped onto the types in :mod:`talentflow.errors` here and nowhere
else, so callers can branch on exception class instead of message text.
"""

from __future__ import annotations

import asyncio
import errno
import json
import logging
from typing import Any, Dict, Optional

import aiohttp

from ..errors import (
    ConnectionReset,
    EmptyResult,
    LookupTimeout,
    MalformedResponse,
    NotFound,
    QuotaExceeded,
    RateLimited,
    ServiceUnavailable,
)

logger = logging.getLogger(__name__)


def _retry_after(headers: Any) -> Optional[int]:
    value = headers.get("Retry-After") if headers is not None else None
    if value is None:
        return None
    try:
        return max(int(float(value)), 0)
    except ValueError:
        return None


def raise_for_status(status: int, body: str, *, service: str, headers: Any = None) -> None:
    """Raise the typed error matching an HTTP status, or return for 2xx/3xx."""
    if status < 400:
        return
    snippet = body[:200].strip()
    if status == 429:
        raise RateLimited(f"rate limit exceeded (HTTP 429) {snippet}".strip(), service=service, retry_after=_retry_after(headers))
    if status == 402:
        raise QuotaExceeded(f"account credits exhausted (HTTP 402) {snippet}".strip(), service=service)
    if status == 403:
        raise QuotaExceeded(f"quota exceeded or access denied (HTTP 403) {snippet}".strip(), service=service)
    if status == 401:
        raise ServiceUnavailable("unauthorized (HTTP 401); check the API key", service=service)
    if status >= 500:
        raise ServiceUnavailable(f"server error (HTTP {status})", service=service)
    if status in (404, 410):
        raise NotFound(f"not found (HTTP {status})", service=service)
    raise EmptyResult(f"request rejected (HTTP {status}) {snippet}".strip(), service=service)


def classify_transport_error(exc: BaseException, *, service: str) -> Exception:
    """Map an aiohttp/asyncio transport exception onto the error taxonomy."""
    if isinstance(exc, asyncio.TimeoutError):
        return LookupTimeout("request timed out", service=service)
    if isinstance(exc, aiohttp.ServerDisconnectedError):
        return ConnectionReset("server closed the connection", service=service)
    if isinstance(exc, aiohttp.ClientConnectorError):
        return ServiceUnavailable(f"cannot connect: {exc}", service=service)
    if isinstance(exc, ConnectionResetError) or (
        isinstance(exc, aiohttp.ClientOSError) and exc.errno == errno.ECONNRESET
    ):
        return ConnectionReset(f"connection reset: {exc}", service=service)
    if isinstance(exc, aiohttp.ClientPayloadError):
        return ConnectionReset(f"response ended prematurely: {exc}", service=service)
    return ServiceUnavailable(f"transport error: {exc}", service=service)


async def request_json(
    session: aiohttp.ClientSession,
    method: str,
    url: str,
    *,
    service: str,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    json_body: Optional[Dict[str, Any]] = None,
) -> Any:
    """Perform an HTTP request and return the decoded JSON body.

    Args:
        session: Shared client session.
        method: HTTP method, e.g. ``"GET"``.
        url: Absolute URL.
        service: Collaborator name recorded on any raised error.
        params: Query-string parameters.
        headers: Extra request headers.
        json_body: JSON request body for POST requests.

    Returns:
        The parsed JSON document.

    Raises:
        CriticalError: On throttling, quota, 5xx, connection or timeout failures.
        NonCriticalError: On 404 and other client errors, or an undecodable body.
    """
    logger.debug("%s %s %s", service, method, url)
    try:
        async with session.request(method, url, params=params, headers=headers, json=json_body) as resp:
            body = await resp.text()
            raise_for_status(resp.status, body, service=service, headers=resp.headers)
    except (aiohttp.ClientError, asyncio.TimeoutError, ConnectionResetError) as exc:
        raise classify_transport_error(exc, service=service) from exc
    try:
        return json.loads(body)
    except ValueError as exc:
        raise MalformedResponse(f"invalid JSON body: {exc}", service=service, raw_text=body[:500]) from exc


async def get_json(
    session: aiohttp.ClientSession,
    url: str,
    *,
    service: str,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> Any:
    return await request_json(session, "GET", url, service=service, params=params, headers=headers)
