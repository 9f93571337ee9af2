"""
Education stage.

The highest degree, its field of study and the institute are extracted
by the text-generation model.  When the model is unavailable or its
reply cannot be decoded, a heuristic reads the profile's structured
education entries instead.  Institutes are classified into two tiers
from a fixed list of top-ranked universities.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from ..criteria import FilterCriteria
from ..lookup.llm_providers import LLMClient
from ..pipeline.candidate import Candidate
from ..pipeline.scheduler import BatchOptions
from ..pipeline.stage import Stage

logger = logging.getLogger(__name__)

DEFAULT_OPTIONS = BatchOptions(batch_size=5, inter_batch_delay=2.0, per_item_timeout=60.0)

TOP_TIER = "Top Institute (QS <300)"
OTHER_TIER = "Other Institute (QS >300)"

TOP_UNIVERSITIES = [
    "MIT", "Massachusetts Institute of Technology", "Stanford", "Harvard", "Caltech", "Oxford",
    "Cambridge", "ETH Zurich", "UCL", "Imperial College London", "University of Chicago", "NUS",
    "National University of Singapore", "Peking University", "Tsinghua University",
    "University of Pennsylvania", "University of Edinburgh", "Princeton", "Yale",
    "University of California Berkeley", "UC Berkeley", "University of Tokyo", "Columbia University",
    "McGill University", "University of Michigan", "University of Toronto", "Carnegie Mellon",
    "CMU", "New York University", "KAIST", "University of Washington",
    "Georgia Institute of Technology", "University of Illinois", "University of Texas at Austin",
    "University of California San Diego", "Purdue University", "Technical University of Munich",
    "EPFL", "University of British Columbia", "University of Melbourne", "Seoul National University",
    "IIT Bombay", "IIT Delhi", "IIT Madras", "IIT Kanpur", "IIT Kharagpur", "IIT Roorkee",
    "IIT Guwahati", "IISc", "Indian Institute of Science", "University of Amsterdam", "KU Leuven",
    "Delft University of Technology", "University of Maryland", "Cornell", "Johns Hopkins",
]

FIELD_SYNONYMS: Dict[str, List[str]] = {
    "ai": ["ai", "artificial intelligence", "machine learning", "deep learning"],
    "computer science": ["computer science", "computer", "cs", "software"],
    "machine learning": ["machine learning", "ml", "deep learning", "ai"],
    "computer vision": ["computer vision", "cv", "image processing", "vision"],
    "nlp": ["nlp", "natural language", "text", "language processing"],
    "related fields": ["data science", "robotics", "statistics", "mathematics", "electrical", "electronics"],
}

_TITLE_RE = re.compile(r"^(dr|mr|mrs|miss|ms|prof|professor)\.?\s+", re.IGNORECASE)

PROMPT_TEMPLATE = """You are an expert at extracting education information from profiles.
Use ONLY information present in the profile below.

PROFILE:
{profile}

Return ONLY a JSON object with these keys:
{{
  "name": "full name without titles such as Dr. or Prof.",
  "degree": "PhD | Pursuing PhD | Master's | Bachelor's",
  "field_of_study": "field of the highest degree, or Unknown",
  "institute": "institution of the highest degree, or Unknown Institute"
}}"""


def institute_tier(institute: Optional[str]) -> Optional[str]:
    if not institute or institute.lower().startswith("unknown"):
        return None
    lowered = institute.lower()
    for top in TOP_UNIVERSITIES:
        if len(top) <= 4:
            if re.search(rf"\b{re.escape(top.lower())}\b", lowered):
                return TOP_TIER
        elif top.lower() in lowered:
            return TOP_TIER
    return OTHER_TIER


def _degree_rank(text: str) -> Tuple[int, str]:
    lowered = text.lower()
    if "phd" in lowered or "ph.d" in lowered or "doctor" in lowered:
        if "candidate" in lowered or "pursuing" in lowered or "student" in lowered:
            return 4, "Pursuing PhD"
        return 4, "PhD"
    if "master" in lowered or re.search(r"\bm\.?(s|sc|tech|eng|a)\b", lowered):
        return 3, "Master's"
    if "bachelor" in lowered or re.search(r"\bb\.?(s|sc|tech|e|a)\b", lowered):
        return 2, "Bachelor's"
    return 0, ""


def heuristic_education(profile: Dict[str, Any]) -> Dict[str, Any]:
    """Pick the highest degree from structured education entries."""
    best: Optional[Dict[str, Any]] = None
    best_rank = 0
    for entry in profile.get("education") or []:
        degrees = " ".join(entry.get("degrees") or [])
        rank, degree = _degree_rank(degrees)
        if rank > best_rank:
            best_rank = rank
            majors = entry.get("majors") or []
            best = {
                "degree": degree,
                "field_of_study": majors[0] if majors else None,
                "institute": entry.get("school_name"),
            }
    result = best or {"degree": None, "field_of_study": None, "institute": None}
    result["name"] = profile.get("full_name")
    result["method"] = "heuristic"
    return result


def _clean(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    if not value or value.lower() in ("unknown", "unknown institute", "n/a", "none"):
        return None
    return value


def _from_reply(reply: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    degree = _clean(reply.get("degree"))
    if reply.get("_empty_reason") or not degree:
        return None
    name = _clean(reply.get("name"))
    return {
        "name": _TITLE_RE.sub("", name) if name else None,
        "degree": degree,
        "field_of_study": _clean(reply.get("field_of_study") or reply.get("fieldOfStudy")),
        "institute": _clean(reply.get("institute")),
        "method": "llm",
    }


def passes_education(candidate: Candidate, criteria: FilterCriteria) -> bool:
    """Check the extracted education against the degree, field and tier criteria.

    A criterion is only enforced when both the criteria and the candidate
    state a value.
    """
    education = candidate.facts.get("education") or {}
    wanted = criteria.education

    degree = (education.get("degree") or "").lower()
    if wanted.degree and degree:
        expected = wanted.degree.lower()
        if "phd" in expected and "phd" not in degree:
            return False
        if "master" in expected and "master" not in degree and "m." not in degree:
            return False
        if "bachelor" in expected and "bachelor" not in degree and "b." not in degree:
            return False

    field_of_study = (education.get("field_of_study") or "").lower()
    if wanted.field_of_study and field_of_study:
        expected = wanted.field_of_study.lower()
        synonyms = FIELD_SYNONYMS.get(expected, [expected])
        if not any(s in field_of_study for s in synonyms):
            return False

    tier = education.get("institute_tier")
    if wanted.institute_tier and tier:
        if wanted.institute_tier == TOP_TIER and "<300" not in tier:
            return False
        if wanted.institute_tier == OTHER_TIER and ">300" not in tier:
            return False
        if wanted.institute_tier not in (TOP_TIER, OTHER_TIER) and tier != wanted.institute_tier:
            return False
    return True


def make_stage(llm: LLMClient, options: BatchOptions = DEFAULT_OPTIONS) -> Stage[Candidate]:
    async def transform(candidate: Candidate) -> Candidate:
        profile = candidate.profile
        education: Optional[Dict[str, Any]] = None
        reason = None
        if profile:
            prompt = PROMPT_TEMPLATE.format(profile=json.dumps(profile, indent=2, default=str))
            reply = await llm.generate_json(prompt)
            education = _from_reply(reply)
            reason = reply.get("_empty_reason")
        if education is None:
            education = heuristic_education(profile)
            if reason:
                education["fallback_reason"] = reason
        education["institute_tier"] = institute_tier(education.get("institute"))
        if education.get("name"):
            candidate.name = education["name"]
        candidate.facts["education"] = education
        logger.debug("Education for %s: %s", candidate.username, education)
        return candidate

    return Stage(name="education", transform=transform, keep=passes_education, options=options)
