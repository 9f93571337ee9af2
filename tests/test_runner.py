"""Tests for the end-to-end runner with discovery and stages stubbed out."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, List

import pytest  # type: ignore

from talentflow import runner
from talentflow.cache import CacheStore
from talentflow.config import Settings
from talentflow.criteria import FilterCriteria
from talentflow.errors import ErrorKind, RateLimited
from talentflow.pipeline import BatchOptions, Candidate, RunFailure, RunSummary, Stage


def _settings(tmp_path: Path, **kwargs: Any) -> Settings:
    return Settings(cache_dir=str(tmp_path / "cache"), **kwargs)


def test_search_failure_is_reported_as_search_stage(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    async def failing_search(serp: Any, criteria: Any, max_results: int = 50) -> List[Candidate]:
        raise RateLimited("slow down", service="serpapi_search")

    monkeypatch.setattr(runner, "search_candidates", failing_search)
    result = asyncio.run(runner.run_profile_search(_settings(tmp_path), FilterCriteria()))
    assert isinstance(result, RunFailure)
    assert result.stage == "search"
    assert result.kind is ErrorKind.RATE_LIMITED
    assert result.stage_counts == []


def test_no_candidates_is_an_empty_summary(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    async def no_hits(serp: Any, criteria: Any, max_results: int = 50) -> List[Candidate]:
        return []

    monkeypatch.setattr(runner, "search_candidates", no_hits)
    result = asyncio.run(runner.run_profile_search(_settings(tmp_path), FilterCriteria()))
    assert isinstance(result, RunSummary)
    assert result.survivors == []
    assert result.stage_counts == []


def test_candidates_flow_through_stages(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    async def hits(serp: Any, criteria: Any, max_results: int = 50) -> List[Candidate]:
        return [Candidate(username=f"user{i}") for i in range(10)]

    async def tag(candidate: Candidate) -> Candidate:
        candidate.facts["tagged"] = True
        return candidate

    def stages(*clients: Any) -> List[Stage]:
        options = BatchOptions(batch_size=5, inter_batch_delay=0)
        return [Stage(name="tag", transform=tag, options=options)]

    monkeypatch.setattr(runner, "search_candidates", hits)
    monkeypatch.setattr(runner, "default_stages", stages)
    store = CacheStore(tmp_path / "cache")
    result = asyncio.run(
        runner.run_profile_search(_settings(tmp_path, stages={"tag": {"batch_size": 2}}), FilterCriteria(), max_results=2, store=store)
    )
    assert isinstance(result, RunSummary)
    assert result.stage_counts[0].before == 6
    assert [c.username for c in result.survivors] == ["user0", "user1"]
    assert all(c.facts["tagged"] for c in result.survivors)
