"""GitHub REST API: user search, user detail and repository listing."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import aiohttp

from ..cache import CacheStore
from .adapter import LookupAdapter
from .http import get_json

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"


def _empty_list(reason: str) -> Dict[str, Any]:
    return {"items": [], "_empty_reason": reason}


class GitHubClient:
    """Cached GitHub lookups.

    Unauthenticated use is allowed but heavily rate-limited; a token
    raises the limit.  403 responses are treated as quota exhaustion.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        token: Optional[str],
        store: CacheStore,
        *,
        timeout: float = 15.0,
        politeness_delay: float = 0.5,
    ) -> None:
        self.session = session
        self.token = token
        self.adapter = LookupAdapter(
            "github", store, timeout=timeout, politeness_delay=politeness_delay, empty_factory=_empty_list
        )

    @property
    def adapters(self):
        return [self.adapter]

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/vnd.github+json", "User-Agent": "talentflow"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await get_json(
            self.session, f"{GITHUB_API_URL}{path}", service="github", params=params, headers=self._headers()
        )

    async def search_users(self, name: str, per_page: int = 5) -> List[Dict[str, Any]]:
        params = {"q": f"{name} in:name type:user", "per_page": per_page}

        async def fetch() -> Dict[str, Any]:
            return await self._get("/search/users", params)

        data = await self.adapter.fetch_or_cache({"op": "search", **params}, fetch)
        return list(data.get("items") or [])

    async def user(self, login: str) -> Dict[str, Any]:
        async def fetch() -> Dict[str, Any]:
            return await self._get(f"/users/{login}")

        data = await self.adapter.fetch_or_cache({"op": "user", "login": login}, fetch, empty_factory=lambda r: {})
        return dict(data)

    async def repositories(self, login: str) -> List[Dict[str, Any]]:
        params = {"per_page": 100, "sort": "updated"}

        async def fetch() -> Dict[str, Any]:
            repos = await self._get(f"/users/{login}/repos", params)
            return {"items": repos if isinstance(repos, list) else []}

        data = await self.adapter.fetch_or_cache({"op": "repos", "login": login}, fetch)
        return list(data.get("items") or [])
