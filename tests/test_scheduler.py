"""Tests for the paced batch scheduler."""

from __future__ import annotations

import asyncio
import time
from typing import List

import pytest  # type: ignore

from talentflow.errors import LookupTimeout, RateLimited
from talentflow.pipeline.scheduler import BatchHalted, BatchOptions, run_batches


class InFlight:
    """Records the peak number of concurrently running operations."""

    def __init__(self, duration: float = 0.01) -> None:
        self.duration = duration
        self.current = 0
        self.peak = 0
        self.started: List[int] = []

    async def __call__(self, item: int) -> int:
        self.started.append(item)
        self.current += 1
        self.peak = max(self.peak, self.current)
        try:
            await asyncio.sleep(self.duration)
        finally:
            self.current -= 1
        return item * 10


def test_results_cover_every_item_in_order() -> None:
    op = InFlight()
    report = asyncio.run(run_batches(list(range(7)), op, BatchOptions(batch_size=3, inter_batch_delay=0)))
    assert [o.item for o in report.outcomes] == list(range(7))
    assert report.values == [i * 10 for i in range(7)]
    assert report.failures == []
    assert not report.halted


def test_concurrency_is_bounded_by_batch_size() -> None:
    op = InFlight(duration=0.02)
    asyncio.run(run_batches(list(range(9)), op, BatchOptions(batch_size=3, inter_batch_delay=0)))
    assert op.peak == 3


def test_pacing_between_groups_but_not_after_the_last() -> None:
    op = InFlight(duration=0.01)
    options = BatchOptions(batch_size=2, inter_batch_delay=0.1)

    async def timed() -> float:
        started = time.monotonic()
        await run_batches([1, 2, 3, 4, 5], op, options)
        return time.monotonic() - started

    elapsed = asyncio.run(timed())
    # three groups, two pauses
    assert elapsed >= 0.2
    assert elapsed < 0.3 + 1.0


def test_slow_item_times_out_without_affecting_siblings() -> None:
    async def op(item: int) -> int:
        await asyncio.sleep(1.0 if item == 2 else 0)
        return item

    report = asyncio.run(run_batches([1, 2, 3], op, BatchOptions(batch_size=3, per_item_timeout=0.05)))
    assert [o.ok for o in report.outcomes] == [True, False, True]
    assert isinstance(report.outcomes[1].error, LookupTimeout)
    assert report.values == [1, 3]


def test_item_exceptions_are_captured() -> None:
    async def op(item: int) -> int:
        if item == 1:
            raise KeyError("missing")
        return item

    report = asyncio.run(run_batches([0, 1, 2], op, BatchOptions(batch_size=2, inter_batch_delay=0)))
    assert len(report.outcomes) == 3
    assert isinstance(report.outcomes[1].error, KeyError)
    assert report.values == [0, 2]


def test_halt_skips_groups_that_have_not_started() -> None:
    started: List[int] = []

    async def op(item: int) -> int:
        started.append(item)
        if item == 3:
            raise RateLimited("slow down", service="serpapi_search")
        return item

    report = asyncio.run(
        run_batches(
            list(range(1, 11)),
            op,
            BatchOptions(batch_size=2, inter_batch_delay=0),
            halt_on=lambda o: isinstance(o.error, RateLimited),
        )
    )
    assert sorted(started) == [1, 2, 3, 4]
    assert len(report.outcomes) == 10
    assert report.halted
    skipped = [o for o in report.outcomes if o.skipped]
    assert [o.item for o in skipped] == [5, 6, 7, 8, 9, 10]
    assert all(isinstance(o.error, BatchHalted) for o in skipped)


def test_empty_input() -> None:
    async def op(item: int) -> int:
        return item

    report = asyncio.run(run_batches([], op))
    assert report.outcomes == []


@pytest.mark.parametrize(
    "kwargs",
    [{"batch_size": 0}, {"inter_batch_delay": -1}, {"per_item_timeout": 0}],
)
def test_invalid_options_are_rejected(kwargs) -> None:
    with pytest.raises(ValueError):
        BatchOptions(**kwargs)


def test_merged_overrides() -> None:
    base = BatchOptions(batch_size=5, inter_batch_delay=2.0, per_item_timeout=60.0)
    merged = base.merged({"batch_size": "2", "inter_batch_delay": 0})
    assert merged == BatchOptions(batch_size=2, inter_batch_delay=0.0, per_item_timeout=60.0)
    assert base.merged(None) is base
