"""
Funnel controller.

Runs an ordered list of :class:`~talentflow.pipeline.stage.Stage` over a
candidate set.  Each stage goes through the batch scheduler; only items
whose transform succeeded are kept, then the stage filter shrinks the
set further.  The run stops early when a stage leaves nobody, and aborts
with a :class:`RunFailure` as soon as any transform raises a critical
error.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Mapping, Optional, Sequence, TypeVar, Union

from ..errors import CriticalError, ErrorKind
from .scheduler import BatchOutcome, run_batches
from .stage import Stage

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class StageCount:
    name: str
    before: int
    after: int


@dataclass(frozen=True)
class RunSummary(Generic[T]):
    survivors: List[T]
    stage_counts: List[StageCount]
    elapsed: float
    ok: bool = field(default=True, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "elapsed": round(self.elapsed, 3),
            "stage_counts": [vars(c) for c in self.stage_counts],
            "survivors": [s.to_dict() if hasattr(s, "to_dict") else s for s in self.survivors],
        }


@dataclass(frozen=True)
class RunFailure:
    kind: ErrorKind
    message: str
    retry_after: int
    stage: str
    service: str
    stage_counts: List[StageCount]
    elapsed: float
    ok: bool = field(default=False, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": False,
            "error": {
                "kind": self.kind.value,
                "message": self.message,
                "retry_after": self.retry_after,
                "stage": self.stage,
                "service": self.service,
            },
            "elapsed": round(self.elapsed, 3),
            "stage_counts": [vars(c) for c in self.stage_counts],
        }


RunResult = Union[RunSummary, RunFailure]


def _is_critical(outcome: BatchOutcome) -> bool:
    return isinstance(outcome.error, CriticalError)


class Funnel(Generic[T]):
    """Ordered stages plus the controller that runs them.

    Args:
        stages: Stages in execution order.  They are shared, read-only
            descriptors and may be reused across runs.
        over_provision: When only ``max_results`` is given, the input is
            truncated to ``max_results * over_provision`` candidates.
    """

    def __init__(self, stages: Sequence[Stage[T]], over_provision: int = 3) -> None:
        names = [s.name for s in stages]
        if len(set(names)) != len(names):
            raise ValueError(f"stage names must be unique: {names}")
        self.stages = list(stages)
        self.over_provision = over_provision

    def _initial(self, candidates: Sequence[T], max_results: Optional[int], max_candidates: Optional[int]) -> List[T]:
        current = list(candidates)
        limit = max_candidates
        if limit is None and max_results is not None:
            limit = max_results * self.over_provision
        if limit is not None:
            current = current[: max(limit, 0)]
        return current

    async def run(
        self,
        candidates: Sequence[T],
        criteria: Any = None,
        *,
        max_results: Optional[int] = None,
        max_candidates: Optional[int] = None,
        overrides: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ) -> RunResult:
        """Push ``candidates`` through every stage.

        Args:
            candidates: Input items in priority order.
            criteria: Opaque filter criteria handed to each stage filter.
            max_results: Cap on the number of survivors returned.
            max_candidates: Cap on the number of inputs considered.
            overrides: Per-stage ``{name: {batch_size, inter_batch_delay,
                per_item_timeout}}`` option overrides.

        Returns:
            ``RunSummary`` on completion (possibly with no survivors) or
            ``RunFailure`` when a critical error aborted the run.
        """
        started = time.monotonic()
        overrides = overrides or {}
        current = self._initial(candidates, max_results, max_candidates)
        counts: List[StageCount] = []
        logger.info("Funnel starting with %d candidates and %d stages", len(current), len(self.stages))

        for stage in self.stages:
            if not current:
                break
            options = stage.options.merged(overrides.get(stage.name))
            stage_started = time.monotonic()
            logger.info("Stage %s: %d candidates", stage.name, len(current))
            report = await run_batches(current, stage.transform, options, halt_on=_is_critical, label=stage.name)

            critical = next((o.error for o in report.outcomes if _is_critical(o)), None)
            if critical is not None:
                logger.error("Stage %s aborted the run: %s", stage.name, critical)
                return RunFailure(
                    kind=critical.kind,
                    message=critical.message,
                    retry_after=critical.retry_after,
                    stage=stage.name,
                    service=critical.service,
                    stage_counts=counts,
                    elapsed=time.monotonic() - started,
                )

            kept = [o.value for o in report.outcomes if o.ok and stage.accepts(o.value, criteria)]
            counts.append(StageCount(name=stage.name, before=len(current), after=len(kept)))
            logger.info(
                "Stage %s: %d -> %d in %.1fs", stage.name, len(current), len(kept), time.monotonic() - stage_started
            )
            current = kept
            if not current:
                logger.info("No candidates left after stage %s; skipping remaining stages", stage.name)

        survivors = current[:max_results] if max_results is not None else current
        elapsed = time.monotonic() - started
        logger.info("Funnel finished: %d survivors in %.1fs", len(survivors), elapsed)
        return RunSummary(survivors=survivors, stage_counts=counts, elapsed=elapsed)
