"""
SerpAPI collaborator: Google web search, Google Scholar and Google Patents.

SerpAPI reports some failures inside a 200 response as an ``"error"``
string (no results, exhausted plan, bad key).  Those are classified
here alongside the HTTP status codes.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional

import aiohttp

from ..cache import CacheStore
from ..errors import EmptyResult, QuotaExceeded, ServiceUnavailable
from .adapter import LookupAdapter
from .http import get_json

logger = logging.getLogger(__name__)

SERPAPI_URL = "https://serpapi.com/search.json"
_QUOTA_RE = re.compile(r"run out of searches|searches for the month|\bquota\b|\bplans?\b")


def _empty_search(reason: str) -> Dict[str, Any]:
    return {"organic_results": [], "_empty_reason": reason}


def _empty_scholar(reason: str) -> Dict[str, Any]:
    return {"profiles": {"authors": []}, "organic_results": [], "_empty_reason": reason}


def _empty_author(reason: str) -> Dict[str, Any]:
    return {"author": {}, "articles": [], "cited_by": {}, "_empty_reason": reason}


def check_body(data: Any, *, service: str) -> Dict[str, Any]:
    """Raise for an in-band SerpAPI error, otherwise return ``data``."""
    if not isinstance(data, dict):
        raise EmptyResult("unexpected response shape", service=service)
    error = data.get("error")
    if not error:
        return data
    text = str(error)
    lowered = text.lower()
    if _QUOTA_RE.search(lowered):
        raise QuotaExceeded(text, service=service)
    if "api key" in lowered:
        raise ServiceUnavailable(text, service=service)
    raise EmptyResult(text, service=service)


class SerpApiClient:
    """Cached access to the SerpAPI engines used by the funnel.

    Args:
        session: Shared aiohttp session.
        api_key: SerpAPI key; ``None`` makes every uncached lookup raise
            ``ServiceUnavailable``.
        store: Shared cache store.
        timeout: Per-request timeout in seconds.
        politeness_delay: Delay before author-detail and patent requests.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        api_key: Optional[str],
        store: CacheStore,
        *,
        timeout: float = 15.0,
        politeness_delay: float = 2.0,
    ) -> None:
        self.session = session
        self.api_key = api_key
        self.search_adapter = LookupAdapter("serpapi_search", store, timeout=timeout, empty_factory=_empty_search)
        self.scholar_adapter = LookupAdapter("serpapi_scholar", store, timeout=timeout, empty_factory=_empty_scholar)
        self.author_adapter = LookupAdapter(
            "serpapi_author", store, timeout=timeout, politeness_delay=politeness_delay, empty_factory=_empty_author
        )
        self.patent_adapter = LookupAdapter(
            "serpapi_patents", store, timeout=timeout, politeness_delay=politeness_delay, empty_factory=_empty_search
        )

    @property
    def adapters(self):
        return [self.search_adapter, self.scholar_adapter, self.author_adapter, self.patent_adapter]

    async def _query(self, service: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise ServiceUnavailable("SERPAPI_API_KEY is not configured", service=service)
        data = await get_json(self.session, SERPAPI_URL, service=service, params={**params, "api_key": self.api_key})
        return check_body(data, service=service)

    async def web_search(self, query: str, num: int = 10) -> Dict[str, Any]:
        params = {"engine": "google", "q": query, "num": num}

        async def fetch() -> Dict[str, Any]:
            return await self._query("serpapi_search", params)

        return await self.search_adapter.fetch_or_cache(params, fetch)

    async def scholar_search(self, author_name: str) -> Dict[str, Any]:
        params = {"engine": "google_scholar", "q": author_name, "hl": "en"}

        async def fetch() -> Dict[str, Any]:
            return await self._query("serpapi_scholar", params)

        return await self.scholar_adapter.fetch_or_cache(params, fetch)

    async def author_detail(self, author_id: str) -> Dict[str, Any]:
        params = {"engine": "google_scholar_author", "author_id": author_id, "num": 100, "hl": "en"}

        async def fetch() -> Dict[str, Any]:
            return await self._query("serpapi_author", params)

        return await self.author_adapter.fetch_or_cache(params, fetch)

    async def patent_search(self, inventor: str, status: str = "GRANT") -> Dict[str, Any]:
        params = {"engine": "google_patents", "inventor": inventor, "status": status, "num": 100}

        async def fetch() -> Dict[str, Any]:
            return await self._query("serpapi_patents", params)

        return await self.patent_adapter.fetch_or_cache(params, fetch)
