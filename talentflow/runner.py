"""
End-to-end profile search: discovery followed by the enrichment funnel.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

import aiohttp

from .cache import CachePolicy, CacheStore
from .config import Settings
from .criteria import FilterCriteria
from .enrich import default_stages
from .errors import CriticalError
from .lookup import GitHubClient, LLMClient, PdlClient, SerpApiClient, get_default_provider
from .pipeline import Funnel, RunFailure, RunResult, RunSummary
from .search import search_candidates

logger = logging.getLogger(__name__)

OVER_PROVISION = 3


async def run_profile_search(
    settings: Settings,
    criteria: FilterCriteria,
    *,
    max_results: int = 20,
    max_candidates: Optional[int] = None,
    max_search_results: int = 50,
    policy: Optional[CachePolicy] = None,
    store: Optional[CacheStore] = None,
) -> RunResult:
    """Search for candidate profiles and push them through the funnel.

    Args:
        settings: Resolved configuration.
        criteria: Filter criteria for every stage.
        max_results: Number of survivors to return.
        max_candidates: Cap on candidates entering the funnel; defaults to
            ``max_results * 3``.
        max_search_results: Number of web-search hits requested.
        policy: Cache policy; defaults to the one derived from settings.
        store: Pre-built cache store, mainly for tests.

    Returns:
        ``RunSummary`` or ``RunFailure``.
    """
    started = time.monotonic()
    store = store or CacheStore(settings.cache_dir, policy or settings.cache_policy())
    timeout = aiohttp.ClientTimeout(total=settings.request_timeout)

    async with aiohttp.ClientSession(timeout=timeout) as session:
        serp = SerpApiClient(
            session, settings.serpapi_api_key, store, timeout=min(15.0, settings.request_timeout),
            politeness_delay=settings.politeness_delay,
        )
        pdl = PdlClient(session, settings.pdl_api_key, store, timeout=settings.request_timeout)
        github = GitHubClient(session, settings.github_token, store, timeout=min(15.0, settings.request_timeout))
        llm = LLMClient(get_default_provider(settings, session), store)

        try:
            candidates = await search_candidates(serp, criteria, max_search_results)
        except CriticalError as exc:
            logger.error("Candidate search failed: %s", exc)
            return RunFailure(
                kind=exc.kind,
                message=exc.message,
                retry_after=exc.retry_after,
                stage="search",
                service=exc.service,
                stage_counts=[],
                elapsed=time.monotonic() - started,
            )
        if not candidates:
            logger.info("Search returned no candidate profiles")
            return RunSummary(survivors=[], stage_counts=[], elapsed=time.monotonic() - started)

        funnel = Funnel(default_stages(serp, pdl, github, llm), over_provision=OVER_PROVISION)
        return await funnel.run(
            candidates,
            criteria,
            max_results=max_results,
            max_candidates=max_candidates,
            overrides=settings.stages,
        )
