"""
Experience stage: years of experience, top AI organisations and
mentorship roles, read from the profile's employment history.
"""

from __future__ import annotations

import logging
import re
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..criteria import FilterCriteria
from ..pipeline.candidate import Candidate
from ..pipeline.scheduler import BatchOptions
from ..pipeline.stage import Stage

logger = logging.getLogger(__name__)

DEFAULT_OPTIONS = BatchOptions(batch_size=5, inter_batch_delay=2.0, per_item_timeout=60.0)

TOP_AI_ORGANIZATIONS = [
    "Microsoft", "Google", "OpenAI", "DeepMind", "Meta", "Facebook", "Apple", "Amazon", "Tesla",
    "Nvidia", "Intel", "IBM", "Adobe", "Salesforce", "Uber", "Airbnb", "Anthropic", "IISc", "MIT",
    "Stanford", "CMU", "Carnegie Mellon", "Berkeley", "Oxford", "Cambridge",
]
MENTORSHIP_TITLES = [
    "lead", "manager", "head", "principal", "director", "mentor", "supervisor", "professor",
    "advisor", "chief",
]
_DATE_RE = re.compile(r"^(\d{4})(?:-(\d{1,2}))?")


def parse_month(value: Any) -> Optional[date]:
    """Parse ``YYYY`` or ``YYYY-MM[-DD]`` into the first day of that month."""
    if not isinstance(value, str):
        return None
    match = _DATE_RE.match(value.strip())
    if not match:
        return None
    month = int(match.group(2) or 1)
    if not 1 <= month <= 12:
        return None
    return date(int(match.group(1)), month, 1)


def _months(start: date, end: date) -> int:
    return (end.year - start.year) * 12 + end.month - start.month


def years_of_experience(experience: List[Dict[str, Any]], today: date) -> float:
    """Total span covered by the positions, with overlaps counted once."""
    spans: List[Tuple[date, date]] = []
    for entry in experience:
        start = parse_month(entry.get("start_date"))
        if start is None:
            continue
        end = parse_month(entry.get("end_date")) or today
        if end > start:
            spans.append((start, end))
    spans.sort()
    months = 0
    current: Optional[Tuple[date, date]] = None
    for start, end in spans:
        if current is None or start > current[1]:
            if current is not None:
                months += _months(*current)
            current = (start, end)
        elif end > current[1]:
            current = (current[0], end)
    if current is not None:
        months += _months(*current)
    return round(months / 12, 1)


def top_ai_organizations(experience: List[Dict[str, Any]]) -> List[str]:
    found: List[str] = []
    for entry in experience:
        company = (entry.get("company_name") or "").lower()
        for org in TOP_AI_ORGANIZATIONS:
            if re.search(rf"\b{re.escape(org.lower())}\b", company) and org not in found:
                found.append(org)
    return found


def has_mentorship_role(experience: List[Dict[str, Any]]) -> bool:
    for entry in experience:
        title = (entry.get("title") or "").lower()
        if any(re.search(rf"\b{t}\b", title) for t in MENTORSHIP_TITLES):
            return True
    return False


def passes_experience(candidate: Candidate, criteria: FilterCriteria) -> bool:
    minimum = criteria.experience.min_years
    if minimum is None:
        return True
    return (candidate.facts.get("experience") or {}).get("years_of_experience", 0) >= minimum


def make_stage(options: BatchOptions = DEFAULT_OPTIONS, *, today: Callable[[], date] = date.today) -> Stage[Candidate]:
    async def transform(candidate: Candidate) -> Candidate:
        experience = candidate.profile.get("experience") or []
        candidate.facts["experience"] = {
            "top_ai_organizations": top_ai_organizations(experience),
            "years_of_experience": years_of_experience(experience, today()),
            "mentorship_role": has_mentorship_role(experience),
            "positions": len(experience),
        }
        return candidate

    return Stage(name="experience", transform=transform, keep=passes_experience, options=options)
