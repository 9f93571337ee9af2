"""People Data Labs person enrichment keyed by profile username."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import aiohttp

from ..cache import CacheStore
from ..errors import NotFound, ServiceUnavailable
from .adapter import LookupAdapter
from .http import get_json

logger = logging.getLogger(__name__)

PDL_ENRICH_URL = "https://api.peopledatalabs.com/v5/person/enrich"


def _empty_person(reason: str) -> Dict[str, Any]:
    return {"data": {}, "_empty_reason": reason}


class PdlClient:
    """Cached person-enrichment lookups.

    Args:
        session: Shared aiohttp session.
        api_key: PDL key; ``None`` makes uncached lookups raise
            ``ServiceUnavailable``.
        store: Shared cache store.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        api_key: Optional[str],
        store: CacheStore,
        *,
        timeout: float = 30.0,
    ) -> None:
        self.session = session
        self.api_key = api_key
        self.adapter = LookupAdapter("pdl", store, timeout=timeout, empty_factory=_empty_person)

    @property
    def adapters(self):
        return [self.adapter]

    async def enrich(self, username: str) -> Dict[str, Any]:
        """Return ``{"data": {...}}`` for a profile username (empty ``data`` if unknown)."""
        profile = f"linkedin.com/in/{username}"

        async def fetch() -> Dict[str, Any]:
            if not self.api_key:
                raise ServiceUnavailable("PDL_API_KEY is not configured", service="pdl")
            body = await get_json(
                self.session,
                PDL_ENRICH_URL,
                service="pdl",
                params={"profile": profile},
                headers={"X-Api-Key": self.api_key},
            )
            if not isinstance(body, dict) or body.get("status") != 200 or not body.get("data"):
                raise NotFound(f"no person record for {username}", service="pdl")
            return {"data": body["data"], "likelihood": body.get("likelihood")}

        return await self.adapter.fetch_or_cache({"profile": profile}, fetch)
