"""
Enrichment stages in their default funnel order.

Order matters: ``profile`` fills ``Candidate.profile`` which every later
stage reads, and ``education`` may refine the candidate's name and
institute used by ``publications``.
"""

from __future__ import annotations

from typing import List

from ..lookup.github import GitHubClient
from ..lookup.llm_providers import LLMClient
from ..lookup.pdl import PdlClient
from ..lookup.serpapi import SerpApiClient
from ..pipeline.candidate import Candidate
from ..pipeline.stage import Stage
from . import education, experience, github, patents, profile, publications

STAGE_NAMES = ["profile", "education", "publications", "patents", "github", "experience"]


def default_stages(
    serp: SerpApiClient,
    pdl: PdlClient,
    github_client: GitHubClient,
    llm: LLMClient,
) -> List[Stage[Candidate]]:
    return [
        profile.make_stage(pdl),
        education.make_stage(llm),
        publications.make_stage(serp),
        patents.make_stage(serp),
        github.make_stage(github_client),
        experience.make_stage(),
    ]
