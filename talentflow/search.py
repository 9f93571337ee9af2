"""
Candidate discovery through a web search restricted to profile pages.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional

from .criteria import FilterCriteria
from .lookup.serpapi import SerpApiClient
from .pipeline.candidate import Candidate

logger = logging.getLogger(__name__)

DEGREE_TERMS: Dict[str, str] = {
    "PhD": '"PhD" OR "Ph.D" OR "Doctor"',
    "Master's": '"Master" OR "MS" OR "MSc" OR "MA"',
    "Pursuing PhD": '"PhD student" OR "PhD candidate" OR "pursuing PhD"',
}

FIELD_TERMS: Dict[str, str] = {
    "AI": '"Artificial Intelligence" OR "AI" OR "Machine Learning"',
    "Computer Science": '"Computer Science" OR "CS"',
    "Machine Learning": '"Machine Learning" OR "ML" OR "Deep Learning"',
    "Computer Vision": '"Computer Vision" OR "CV" OR "Image Processing"',
    "NLP": '"Natural Language Processing" OR "NLP" OR "Text Mining"',
    "Related Fields": '"Data Science" OR "Robotics" OR "Statistics"',
}

_USERNAME_RE = re.compile(r"linkedin\.com/in/([^/?#]+)", re.IGNORECASE)


def build_search_query(criteria: FilterCriteria) -> str:
    """Build the profile-site search query for the education criteria."""
    parts = ["site:linkedin.com/in"]
    degree = criteria.education.degree
    if degree:
        parts.append(DEGREE_TERMS.get(degree, f'"{degree}"'))
    field_of_study = criteria.education.field_of_study
    if field_of_study:
        parts.append(FIELD_TERMS.get(field_of_study, f'"{field_of_study}"'))
    return " ".join(parts)


def extract_username(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    match = _USERNAME_RE.search(url)
    return match.group(1) if match else None


async def search_candidates(serp: SerpApiClient, criteria: FilterCriteria, max_results: int = 50) -> List[Candidate]:
    """Run one cached web search and turn the hits into candidates.

    Hits without a profile URL are dropped and duplicates collapse by
    username, keeping the first occurrence.
    """
    query = build_search_query(criteria)
    logger.info("Searching profiles: %s", query)
    data = await serp.web_search(query, num=max_results)
    candidates: List[Candidate] = []
    seen = set()
    for hit in data.get("organic_results") or []:
        url = hit.get("link")
        username = extract_username(url)
        if not username or username.lower() in seen:
            continue
        seen.add(username.lower())
        candidates.append(
            Candidate(username=username, url=url, title=hit.get("title") or "", snippet=hit.get("snippet") or "")
        )
    logger.info("Found %d candidate profiles", len(candidates))
    return candidates[:max_results]
