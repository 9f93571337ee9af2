"""
Profile stage: resolve a username into a compact professional profile.

The people-enrichment payload is large; only the fields later stages
read are kept.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..lookup.pdl import PdlClient
from ..pipeline.candidate import Candidate
from ..pipeline.scheduler import BatchOptions
from ..pipeline.stage import Stage

logger = logging.getLogger(__name__)

DEFAULT_OPTIONS = BatchOptions(batch_size=8, inter_batch_delay=1.0, per_item_timeout=60.0)


def _name(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("name")
    return value or None


def format_profile(data: Dict[str, Any]) -> Dict[str, Any]:
    """Reduce a raw enrichment record to the fields used for evaluation."""
    data = data.get("data", data) if isinstance(data, dict) else {}
    if not data:
        return {}
    experience: List[Dict[str, Any]] = []
    for exp in data.get("experience") or []:
        company = exp.get("company") or {}
        experience.append(
            {
                "company_name": _name(company),
                "company_industry": company.get("industry") if isinstance(company, dict) else None,
                "title": _name(exp.get("title")),
                "start_date": exp.get("start_date"),
                "end_date": exp.get("end_date"),
                "is_primary": bool(exp.get("is_primary")),
            }
        )
    education: List[Dict[str, Any]] = []
    for edu in data.get("education") or []:
        school = edu.get("school") or {}
        education.append(
            {
                "school_name": _name(school),
                "degrees": list(edu.get("degrees") or []),
                "majors": list(edu.get("majors") or []),
                "start_date": edu.get("start_date"),
                "end_date": edu.get("end_date"),
            }
        )
    full_name = data.get("full_name")
    return {
        "full_name": full_name.title() if isinstance(full_name, str) else None,
        "first_name": data.get("first_name"),
        "last_name": data.get("last_name"),
        "linkedin_url": data.get("linkedin_url"),
        "linkedin_username": data.get("linkedin_username"),
        "github_url": data.get("github_url"),
        "github_username": data.get("github_username"),
        "job_title": data.get("job_title"),
        "job_company_name": data.get("job_company_name"),
        "job_start_date": data.get("job_start_date"),
        "skills": list(data.get("skills") or []),
        "interests": list(data.get("interests") or []),
        "experience": experience,
        "education": education,
        "location_country": data.get("location_country"),
        "industry": data.get("industry"),
    }


def make_stage(pdl: PdlClient, options: BatchOptions = DEFAULT_OPTIONS) -> Stage[Candidate]:
    async def transform(candidate: Candidate) -> Candidate:
        payload = await pdl.enrich(candidate.username)
        profile = format_profile(payload)
        candidate.profile = profile
        if profile.get("full_name"):
            candidate.name = profile["full_name"]
        candidate.facts["profile"] = {"found": bool(profile)}
        if not profile:
            candidate.facts["profile"]["_empty_reason"] = payload.get("_empty_reason", "no profile data")
            logger.info("No profile data for %s", candidate.username)
        return candidate

    return Stage(name="profile", transform=transform, options=options)
