"""
Tests for the funnel controller.

Stages here are small in-memory transforms; the not-found scenario goes
through a real :class:`LookupAdapter` so the empty payload comes from
the same path production lookups use.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

import pytest  # type: ignore

from talentflow.cache import CacheStore
from talentflow.errors import ErrorKind, NotFound, QuotaExceeded, RateLimited
from talentflow.lookup.adapter import LookupAdapter
from talentflow.pipeline import BatchOptions, Funnel, RunFailure, RunSummary, Stage

FAST = BatchOptions(batch_size=2, inter_batch_delay=0, per_item_timeout=5)


@dataclass
class Item:
    name: str
    data: Dict[str, Any] = field(default_factory=dict)


def _stage(name: str, transform, keep=None, options: BatchOptions = FAST) -> Stage:
    return Stage(name=name, transform=transform, keep=keep, options=options)


def test_not_found_keeps_candidate_with_empty_data(tmp_path: Path) -> None:
    adapter = LookupAdapter("profile", CacheStore(tmp_path / "cache"))

    async def transform(item: Item) -> Item:
        async def fetch() -> Dict[str, Any]:
            if item.name == "b":
                raise NotFound("unknown user", service="profile")
            return {"name": item.name.upper()}

        item.data = await adapter.fetch_or_cache(item.name, fetch)
        return item

    funnel = Funnel([_stage("profile", transform)])
    result = asyncio.run(funnel.run([Item("a"), Item("b"), Item("c")]))

    assert isinstance(result, RunSummary)
    assert result.ok
    assert [i.name for i in result.survivors] == ["a", "b", "c"]
    assert result.survivors[0].data == {"name": "A"}
    assert result.survivors[1].data == {"_empty_reason": "not_found: unknown user"}


def test_two_filters_shrink_in_order() -> None:
    async def identity(value: int) -> int:
        return value

    funnel = Funnel(
        [
            _stage("even", identity, keep=lambda v, _: v % 2 == 0),
            _stage("large", identity, keep=lambda v, _: v > 10),
        ]
    )
    result = asyncio.run(funnel.run([4, 8, 12, 20]))
    assert isinstance(result, RunSummary)
    assert result.survivors == [12, 20]
    assert [(c.name, c.before, c.after) for c in result.stage_counts] == [("even", 4, 4), ("large", 4, 2)]


def test_empty_stage_skips_remaining_stages() -> None:
    later_calls: List[int] = []

    async def identity(value: int) -> int:
        return value

    async def recording(value: int) -> int:
        later_calls.append(value)
        return value

    funnel = Funnel(
        [
            _stage("nobody", identity, keep=lambda v, _: False),
            _stage("second", recording),
            _stage("third", recording),
        ]
    )
    result = asyncio.run(funnel.run([1, 2, 3]))
    assert isinstance(result, RunSummary)
    assert result.survivors == []
    assert later_calls == []
    assert [c.name for c in result.stage_counts] == ["nobody"]


def test_critical_error_aborts_run() -> None:
    first_calls: List[int] = []
    second_calls: List[int] = []

    async def first(value: int) -> int:
        first_calls.append(value)
        if value == 3:
            raise RateLimited("too many requests", service="serpapi_scholar")
        return value

    async def second(value: int) -> int:
        second_calls.append(value)
        return value

    funnel = Funnel([_stage("publications", first), _stage("patents", second)])
    result = asyncio.run(funnel.run(list(range(1, 11))))

    assert isinstance(result, RunFailure)
    assert not result.ok
    assert result.kind is ErrorKind.RATE_LIMITED
    assert result.stage == "publications"
    assert result.service == "serpapi_scholar"
    assert result.retry_after == 3600
    assert second_calls == []
    assert max(first_calls) <= 4
    assert result.to_dict()["error"]["kind"] == "rate_limit"


def test_failure_keeps_counts_of_completed_stages() -> None:
    async def identity(value: int) -> int:
        return value

    async def exhausted(value: int) -> int:
        raise QuotaExceeded("plan exhausted", service="serpapi_patents")

    funnel = Funnel([_stage("first", identity, keep=lambda v, _: v > 1), _stage("second", exhausted)])
    result = asyncio.run(funnel.run([1, 2, 3]))
    assert isinstance(result, RunFailure)
    assert result.kind is ErrorKind.QUOTA_EXCEEDED
    assert [(c.name, c.before, c.after) for c in result.stage_counts] == [("first", 3, 2)]


def test_non_critical_transform_exception_drops_only_that_item() -> None:
    async def flaky(value: int) -> int:
        if value == 2:
            raise KeyError("bad record")
        return value

    result = asyncio.run(Funnel([_stage("flaky", flaky)]).run([1, 2, 3]))
    assert isinstance(result, RunSummary)
    assert result.survivors == [1, 3]


def test_survivors_are_a_subset_at_every_stage() -> None:
    async def double(value: int) -> int:
        return value

    funnel = Funnel(
        [
            _stage("a", double, keep=lambda v, _: v % 3 != 0),
            _stage("b", double, keep=lambda v, _: v % 2 == 0),
            _stage("c", double),
        ]
    )
    items = list(range(1, 20))
    result = asyncio.run(funnel.run(items))
    assert set(result.survivors) <= set(items)
    previous = len(items)
    for count in result.stage_counts:
        assert count.before == previous
        assert count.after <= count.before
        previous = count.after


def test_max_results_over_provisions_and_caps() -> None:
    seen: List[int] = []

    async def record(value: int) -> int:
        seen.append(value)
        return value

    funnel = Funnel([_stage("only", record)], over_provision=3)
    result = asyncio.run(funnel.run(list(range(100)), max_results=2))
    assert sorted(seen) == list(range(6))
    assert result.survivors == [0, 1]


def test_max_candidates_overrides_over_provisioning() -> None:
    async def identity(value: int) -> int:
        return value

    result = asyncio.run(Funnel([_stage("only", identity)]).run(list(range(10)), max_results=1, max_candidates=4))
    assert result.stage_counts[0].before == 4
    assert result.survivors == [0]


def test_criteria_reach_stage_filters() -> None:
    async def identity(value: int) -> int:
        return value

    funnel = Funnel([_stage("min", identity, keep=lambda v, criteria: v >= criteria["min"])])
    result = asyncio.run(funnel.run([1, 5, 9], {"min": 5}))
    assert result.survivors == [5, 9]


def test_stage_overrides_change_batching() -> None:
    active = 0
    peak = 0

    async def op(value: int) -> int:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return value

    funnel = Funnel([_stage("wide", op)])
    asyncio.run(funnel.run(list(range(6)), overrides={"wide": {"batch_size": 1}}))
    assert peak == 1


def test_duplicate_stage_names_are_rejected() -> None:
    async def identity(value: int) -> int:
        return value

    with pytest.raises(ValueError):
        Funnel([_stage("same", identity), _stage("same", identity)])


def test_summary_serialises() -> None:
    async def identity(value: int) -> int:
        return value

    result = asyncio.run(Funnel([_stage("only", identity)]).run([1]))
    payload = result.to_dict()
    assert payload["ok"] is True
    assert payload["survivors"] == [1]
    assert payload["stage_counts"] == [{"name": "only", "before": 1, "after": 1}]
