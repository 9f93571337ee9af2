"""
Batch scheduler: bounded fan-out with inter-batch pacing.

Items are split into consecutive groups of ``batch_size``.  Every item
in a group runs concurrently, each under its own timeout, and the group
is joined before the next one starts.  The scheduler sleeps
``inter_batch_delay`` seconds between groups, never after the last one.

:func:`run_batches` never raises for an item failure.  It returns one
:class:`BatchOutcome` per input item, in input order.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Generic, List, Mapping, Optional, Sequence, TypeVar

from ..errors import LookupTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BatchHalted(Exception):
    """Recorded for items whose group never started because the run halted."""


@dataclass(frozen=True)
class BatchOptions:
    batch_size: int = 5
    inter_batch_delay: float = 2.0
    per_item_timeout: float = 60.0

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.inter_batch_delay < 0 or self.per_item_timeout <= 0:
            raise ValueError("inter_batch_delay must be >= 0 and per_item_timeout > 0")

    def merged(self, overrides: Optional[Mapping[str, Any]]) -> "BatchOptions":
        """Return a copy with any of the three fields replaced from ``overrides``."""
        if not overrides:
            return self
        known = {k: overrides[k] for k in ("batch_size", "inter_batch_delay", "per_item_timeout") if k in overrides}
        if "batch_size" in known:
            known["batch_size"] = int(known["batch_size"])
        for key in ("inter_batch_delay", "per_item_timeout"):
            if key in known:
                known[key] = float(known[key])
        return replace(self, **known)


@dataclass
class BatchOutcome(Generic[T]):
    item: T
    ok: bool
    value: Any = None
    error: Optional[BaseException] = None
    skipped: bool = False


@dataclass
class BatchReport(Generic[T]):
    outcomes: List[BatchOutcome[T]] = field(default_factory=list)

    @property
    def failures(self) -> List[BatchOutcome[T]]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def values(self) -> List[Any]:
        return [o.value for o in self.outcomes if o.ok]

    @property
    def halted(self) -> bool:
        return any(o.skipped for o in self.outcomes)


async def _run_one(item: T, op: Callable[[T], Awaitable[Any]], timeout: float) -> BatchOutcome[T]:
    try:
        value = await asyncio.wait_for(op(item), timeout=timeout)
    except asyncio.TimeoutError:
        error = LookupTimeout(f"item did not finish within {timeout:g}s", service="scheduler")
        return BatchOutcome(item=item, ok=False, error=error)
    except Exception as exc:  # noqa: BLE001
        return BatchOutcome(item=item, ok=False, error=exc)
    return BatchOutcome(item=item, ok=True, value=value)


async def run_batches(
    items: Sequence[T],
    op: Callable[[T], Awaitable[Any]],
    options: Optional[BatchOptions] = None,
    *,
    halt_on: Optional[Callable[[BatchOutcome[T]], bool]] = None,
    label: str = "batch",
) -> BatchReport[T]:
    """Run ``op`` over ``items`` in paced, bounded-concurrency groups.

    Args:
        items: Inputs, processed in order of appearance.
        op: Coroutine function applied to each item.
        options: Group size, pause between groups and per-item timeout.
        halt_on: Optional predicate over a finished outcome.  When it is
            true for any outcome of a group, later groups are not started
            and their items are reported as skipped ``BatchHalted`` failures.
        label: Name used in log messages.

    Returns:
        A report with exactly one outcome per input item, in input order.
    """
    options = options or BatchOptions()
    items = list(items)
    report: BatchReport[T] = BatchReport()
    size = options.batch_size
    total_batches = (len(items) + size - 1) // size

    for batch_no, start in enumerate(range(0, len(items), size), start=1):
        group = items[start : start + size]
        logger.info("%s: processing batch %d/%d (%d items)", label, batch_no, total_batches, len(group))
        outcomes = await asyncio.gather(*(_run_one(item, op, options.per_item_timeout) for item in group))
        report.outcomes.extend(outcomes)
        for outcome in outcomes:
            if not outcome.ok:
                logger.warning("%s: item failed: %s", label, outcome.error)

        remaining = items[start + size :]
        if not remaining:
            break
        if halt_on is not None and any(halt_on(o) for o in outcomes):
            logger.warning("%s: halting, %d items not started", label, len(remaining))
            report.outcomes.extend(
                BatchOutcome(item=item, ok=False, error=BatchHalted(f"{label} halted"), skipped=True)
                for item in remaining
            )
            break
        logger.debug("%s: waiting %.2fs before next batch", label, options.inter_batch_delay)
        await asyncio.sleep(options.inter_batch_delay)

    succeeded = sum(1 for o in report.outcomes if o.ok)
    logger.info("%s: %d/%d items succeeded", label, succeeded, len(items))
    return report
