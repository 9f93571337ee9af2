"""
Patents stage: granted and filed AI patents from Google Patents.

Results of an inventor search are scanned one by one with
:func:`~talentflow.pipeline.stage.accumulate`.  Each AI-related patent
is classified as first-inventor or co-inventor depending on where the
candidate appears in the inventor list.  Both scans take a stopping
predicate: by default the granted scan stops at the first
first-inventor match (nothing scores higher) while a co-inventor match
keeps it going, and the filed scan stops at the first match.  The filed
search is skipped entirely when a granted first-inventor patent exists.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..criteria import FilterCriteria
from ..lookup.serpapi import SerpApiClient
from ..pipeline.candidate import Candidate
from ..pipeline.scheduler import BatchOptions
from ..pipeline.stage import Stage, accumulate

logger = logging.getLogger(__name__)

DEFAULT_OPTIONS = BatchOptions(batch_size=3, inter_batch_delay=3.0, per_item_timeout=60.0)

AI_KEYWORDS = [
    "artificial intelligence", "machine learning", "neural network", "deep learning",
    "reinforcement learning", "natural language", "computer vision", "language model",
    "classifier", "training data", "inference model", "transformer", "image recognition",
    "speech recognition",
]
_TOKEN_RE = re.compile(r"[a-z]+")


@dataclass
class PatentScan:
    """Running state of a scan over patent search results."""

    first_inventor: bool = False
    co_inventor: bool = False
    filed: bool = False
    scanned: int = 0
    samples: List[Dict[str, Any]] = field(default_factory=list)


def stop_at_first_inventor(scan: PatentScan) -> bool:
    return scan.first_inventor


def stop_at_first_filed(scan: PatentScan) -> bool:
    return scan.filed


def _tokens(name: str) -> List[str]:
    return _TOKEN_RE.findall(name.casefold())


def name_matches(candidate_name: str, inventor: str) -> bool:
    """True when the first and last name tokens both appear in ``inventor``."""
    wanted = _tokens(candidate_name)
    have = set(_tokens(inventor))
    if not wanted or not have:
        return False
    return wanted[0] in have and wanted[-1] in have


def inventor_list(patent: Dict[str, Any]) -> List[str]:
    raw = patent.get("inventors")
    if isinstance(raw, list):
        return [i.get("name", "") if isinstance(i, dict) else str(i) for i in raw]
    single = patent.get("inventor")
    if isinstance(single, str) and single:
        return [part.strip() for part in single.split(",") if part.strip()]
    return []


def is_ai_patent(patent: Dict[str, Any]) -> bool:
    text = f"{patent.get('title') or ''} {patent.get('snippet') or ''}".lower()
    return any(keyword in text for keyword in AI_KEYWORDS)


def _sample(patent: Dict[str, Any], classification: str) -> Dict[str, Any]:
    return {
        "title": patent.get("title"),
        "patent_id": patent.get("patent_id") or patent.get("publication_number"),
        "classification": classification,
    }


def granted_step(candidate_name: str) -> Callable[[PatentScan, Dict[str, Any]], PatentScan]:
    def step(scan: PatentScan, patent: Dict[str, Any]) -> PatentScan:
        scan.scanned += 1
        if not is_ai_patent(patent):
            return scan
        inventors = inventor_list(patent)
        # inventor searches only return patents that name the person
        if inventors and name_matches(candidate_name, inventors[0]):
            if not scan.first_inventor:
                scan.samples.append(_sample(patent, "granted_first_inventor_ai"))
            scan.first_inventor = True
        elif not scan.co_inventor:
            scan.co_inventor = True
            scan.samples.append(_sample(patent, "granted_co_inventor_ai"))
        return scan

    return step


def filed_step(scan: PatentScan, patent: Dict[str, Any]) -> PatentScan:
    scan.scanned += 1
    if is_ai_patent(patent) and not scan.filed:
        scan.filed = True
        scan.samples.append(_sample(patent, "filed_ai"))
    return scan


def _empty(reason: str, name: Optional[str] = None) -> Dict[str, Any]:
    return {
        "granted_first_inventor": False,
        "granted_co_inventor": False,
        "filed_patent": False,
        "significant_contribution": False,
        "searched_name": name,
        "patents_scanned": 0,
        "sample_patents": [],
        "_empty_reason": reason,
    }


def passes_patents(candidate: Candidate, criteria: FilterCriteria) -> bool:
    patents = candidate.facts.get("patents") or {}
    wanted = criteria.patents
    first = patents.get("granted_first_inventor", False)
    co = patents.get("granted_co_inventor", False)
    filed = patents.get("filed_patent", False)
    if wanted.granted_first_inventor and not first:
        return False
    if wanted.granted_co_inventor and not (first or co):
        return False
    if wanted.filed_patent and not (first or co or filed):
        return False
    return True


def make_stage(
    serp: SerpApiClient,
    options: BatchOptions = DEFAULT_OPTIONS,
    *,
    stop_granted_when: Optional[Callable[[PatentScan], bool]] = stop_at_first_inventor,
    stop_filed_when: Optional[Callable[[PatentScan], bool]] = stop_at_first_filed,
) -> Stage[Candidate]:
    async def transform(candidate: Candidate) -> Candidate:
        name = candidate.name or candidate.profile.get("full_name")
        if not name:
            candidate.facts["patents"] = _empty("no name to search for")
            return candidate

        granted = await serp.patent_search(name, "GRANT")
        scan = await accumulate(granted.get("organic_results") or [], granted_step(name), PatentScan(), stop_granted_when)
        if not scan.first_inventor:
            filed = await serp.patent_search(name, "APPLICATION")
            scan = await accumulate(filed.get("organic_results") or [], filed_step, scan, stop_filed_when)
        else:
            logger.debug("Granted first-inventor patent found for %s; skipping filed search", name)

        candidate.facts["patents"] = {
            "granted_first_inventor": scan.first_inventor,
            "granted_co_inventor": scan.co_inventor,
            "filed_patent": scan.filed,
            "significant_contribution": scan.first_inventor or scan.co_inventor or scan.filed,
            "searched_name": name,
            "patents_scanned": scan.scanned,
            "sample_patents": scan.samples[:5],
        }
        return candidate

    return Stage(name="patents", transform=transform, keep=passes_patents, options=options)
