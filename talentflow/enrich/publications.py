"""
Publications stage: Google Scholar author profile and citation metrics.
"""

from __future__ import annotations

import logging
import re
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from ..criteria import FilterCriteria
from ..lookup.serpapi import SerpApiClient
from ..pipeline.candidate import Candidate
from ..pipeline.scheduler import BatchOptions
from ..pipeline.stage import Stage

logger = logging.getLogger(__name__)

DEFAULT_OPTIONS = BatchOptions(batch_size=3, inter_batch_delay=3.0, per_item_timeout=60.0)

TOP_AI_CONFERENCES = [
    "neurips", "neural information processing systems", "nips", "icml", "iclr", "aaai", "ijcai",
    "cvpr", "iccv", "eccv", "acl", "emnlp", "naacl", "kdd",
]
REPUTABLE_JOURNALS = [
    "journal of machine learning research", "jmlr", "pattern analysis and machine intelligence",
    "tpami", "artificial intelligence", "neural networks and learning systems", "nature", "science",
    "international journal of computer vision", "machine learning",
]
_CONFERENCE_RE = re.compile(r"\b(conference|proceedings|symposium|workshop)\b", re.IGNORECASE)
_JOURNAL_RE = re.compile(r"\b(journal|transactions|letters|review)\b", re.IGNORECASE)


def _empty(reason: str) -> Dict[str, Any]:
    return {
        "author_id": None,
        "publications": 0,
        "citations": 0,
        "h_index": 0,
        "venues": classify_venues([]),
        "initial_year": None,
        "experience_bracket": "0-3",
        "_empty_reason": reason,
    }


def _has_term(text: str, terms: List[str]) -> bool:
    return any(re.search(rf"\b{re.escape(term)}\b", text) for term in terms)


def classify_venues(venues: List[str]) -> Dict[str, bool]:
    """Flag the venue categories present in a list of publication venue strings."""
    flags = {
        "has_top_ai_conference": False,
        "has_other_ai_conference": False,
        "has_reputable_journal": False,
        "has_other_peer_reviewed": False,
    }
    for venue in venues:
        text = (venue or "").lower()
        if not text:
            continue
        if _has_term(text, TOP_AI_CONFERENCES):
            flags["has_top_ai_conference"] = True
        elif _CONFERENCE_RE.search(text):
            flags["has_other_ai_conference"] = True
        elif text in REPUTABLE_JOURNALS or (_has_term(text, REPUTABLE_JOURNALS) and _JOURNAL_RE.search(text)):
            flags["has_reputable_journal"] = True
        elif _JOURNAL_RE.search(text):
            flags["has_other_peer_reviewed"] = True
    return flags


def choose_author(authors: List[Dict[str, Any]], institute: Optional[str]) -> Optional[Dict[str, Any]]:
    """Prefer the first author whose affiliation mentions the institute."""
    if not authors:
        return None
    if institute:
        wanted = institute.lower()
        for author in authors:
            if wanted in (author.get("affiliations") or "").lower():
                return author
    return authors[0]


def _cited_by(detail: Dict[str, Any], metric: str) -> int:
    for row in (detail.get("cited_by") or {}).get("table") or []:
        if metric in row:
            try:
                return int(row[metric].get("all") or 0)
            except (TypeError, ValueError, AttributeError):
                return 0
    return 0


def _year(value: Any) -> Optional[int]:
    try:
        year = int(str(value).strip()[:4])
    except (TypeError, ValueError):
        return None
    return year if year > 1900 else None


def initial_year(detail: Dict[str, Any]) -> Optional[int]:
    """Earliest year among the author's articles and citation graph."""
    years = [_year(a.get("year")) for a in detail.get("articles") or []]
    years += [_year(point.get("year")) for point in (detail.get("cited_by") or {}).get("graph") or []]
    known = [y for y in years if y is not None]
    return min(known) if known else None


def experience_bracket(first_year: Optional[int], current_year: int) -> str:
    """Bucket research experience: ``0-3``, ``4-7``, ``8-10`` or ``10+`` years."""
    if not first_year:
        return "0-3"
    years = current_year - first_year
    if years <= 3:
        return "0-3"
    if years <= 7:
        return "4-7"
    if years <= 10:
        return "8-10"
    return "10+"


def summarize_author(author_id: str, detail: Dict[str, Any], current_year: Optional[int] = None) -> Dict[str, Any]:
    articles = detail.get("articles") or []
    venues = [a.get("publication") or "" for a in articles]
    first_year = initial_year(detail)
    return {
        "author_id": author_id,
        "name": (detail.get("author") or {}).get("name"),
        "publications": len(articles),
        "citations": _cited_by(detail, "citations"),
        "h_index": _cited_by(detail, "h_index"),
        "venues": classify_venues(venues),
        "initial_year": first_year,
        "experience_bracket": experience_bracket(first_year, current_year or date.today().year),
    }


def passes_publications(candidate: Candidate, criteria: FilterCriteria) -> bool:
    pubs = candidate.facts.get("publications") or {}
    wanted = criteria.publications
    venues = pubs.get("venues") or {}
    if wanted.min_publications and pubs.get("publications", 0) < wanted.min_publications:
        return False
    if wanted.min_citations and pubs.get("citations", 0) < wanted.min_citations:
        return False
    if wanted.min_h_index and pubs.get("h_index", 0) < wanted.min_h_index:
        return False
    if wanted.has_top_ai_conferences and not venues.get("has_top_ai_conference"):
        return False
    if wanted.has_other_ai_conferences and not venues.get("has_other_ai_conference"):
        return False
    if wanted.has_reputable_journals and not venues.get("has_reputable_journal"):
        return False
    if wanted.has_other_journals and not venues.get("has_other_peer_reviewed"):
        return False
    if wanted.experience_bracket and pubs.get("experience_bracket") != wanted.experience_bracket:
        return False
    return True


def make_stage(
    serp: SerpApiClient,
    options: BatchOptions = DEFAULT_OPTIONS,
    *,
    today: Callable[[], date] = date.today,
) -> Stage[Candidate]:
    async def transform(candidate: Candidate) -> Candidate:
        name = candidate.name or candidate.profile.get("full_name")
        if not name:
            candidate.facts["publications"] = _empty("no name to search for")
            return candidate
        search = await serp.scholar_search(name)
        authors = (search.get("profiles") or {}).get("authors") or []
        institute = (candidate.facts.get("education") or {}).get("institute")
        author = choose_author(authors, institute)
        if author is None or not author.get("author_id"):
            candidate.facts["publications"] = _empty(search.get("_empty_reason") or "no scholar profile")
            return candidate
        detail = await serp.author_detail(author["author_id"])
        facts = summarize_author(author["author_id"], detail, today().year)
        if detail.get("_empty_reason"):
            facts["_empty_reason"] = detail["_empty_reason"]
        candidate.facts["publications"] = facts
        logger.debug(
            "Publications for %s: %d papers, %d citations, h=%d",
            candidate.username,
            facts["publications"],
            facts["citations"],
            facts["h_index"],
        )
        return candidate

    return Stage(name="publications", transform=transform, keep=passes_publications, options=options)
