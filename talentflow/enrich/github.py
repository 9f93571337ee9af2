"""GitHub stage: repository activity metrics.  Informational only, no filter."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from ..lookup.github import GitHubClient
from ..pipeline.candidate import Candidate
from ..pipeline.scheduler import BatchOptions
from ..pipeline.stage import Stage

logger = logging.getLogger(__name__)

DEFAULT_OPTIONS = BatchOptions(batch_size=4, inter_batch_delay=2.0, per_item_timeout=60.0)

RECENT_WINDOW = timedelta(days=182)

AI_REPO_KEYWORDS = [
    "machine-learning", "machine learning", "deep-learning", "deep learning", "neural", "pytorch",
    "tensorflow", "keras", "jax", "transformer", "llm", "nlp", "computer-vision", "computer vision",
    "reinforcement", "diffusion", "huggingface", "scikit-learn", "classification", "gan",
]
_GITHUB_URL_RE = re.compile(r"github\.com/([A-Za-z0-9-]+)", re.IGNORECASE)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _empty(reason: str) -> Dict[str, Any]:
    return {
        "username": None,
        "repo_volume": 0,
        "repo_initiative": 0,
        "recent_activity": 0,
        "popularity": 0,
        "ai_relevance": False,
        "_empty_reason": reason,
    }


def username_from_profile(profile: Dict[str, Any]) -> Optional[str]:
    if profile.get("github_username"):
        return profile["github_username"]
    match = _GITHUB_URL_RE.search(profile.get("github_url") or "")
    return match.group(1) if match else None


def _parse_ts(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _is_ai_repo(repo: Dict[str, Any]) -> bool:
    text = " ".join(
        [repo.get("name") or "", repo.get("description") or "", " ".join(repo.get("topics") or [])]
    ).lower()
    return any(re.search(rf"\b{re.escape(k)}\b", text) for k in AI_REPO_KEYWORDS)


def analyze_repositories(user: Dict[str, Any], repos: List[Dict[str, Any]], now: datetime) -> Dict[str, Any]:
    """Compute volume, initiative, recent activity, popularity and AI relevance."""
    cutoff = now - RECENT_WINDOW
    recent = 0
    for repo in repos:
        updated = _parse_ts(repo.get("updated_at"))
        if updated is not None and updated >= cutoff:
            recent += 1
    return {
        "repo_volume": int(user.get("public_repos") or len(repos)),
        "repo_initiative": sum(1 for r in repos if not r.get("fork")),
        "recent_activity": recent,
        "popularity": sum(int(r.get("stargazers_count") or 0) for r in repos),
        "ai_relevance": any(_is_ai_repo(r) for r in repos if not r.get("fork")),
    }


def make_stage(
    github: GitHubClient,
    options: BatchOptions = DEFAULT_OPTIONS,
    *,
    clock: Callable[[], datetime] = _utcnow,
) -> Stage[Candidate]:
    async def transform(candidate: Candidate) -> Candidate:
        login = username_from_profile(candidate.profile)
        if not login:
            name = candidate.name or candidate.profile.get("full_name")
            if not name:
                candidate.facts["github"] = _empty("no name to search for")
                return candidate
            hits = await github.search_users(name)
            login = hits[0].get("login") if hits else None
        if not login:
            candidate.facts["github"] = _empty("no GitHub account found")
            return candidate
        user = await github.user(login)
        repos = await github.repositories(login)
        facts = {"username": login}
        facts.update(analyze_repositories(user, repos, clock()))
        candidate.facts["github"] = facts
        return candidate

    return Stage(name="github", transform=transform, options=options)
