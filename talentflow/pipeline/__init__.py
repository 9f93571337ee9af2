"""Staged funnel: candidate record, batch scheduler, stages and controller."""

from .candidate import Candidate
from .funnel import Funnel, RunFailure, RunResult, RunSummary, StageCount
from .scheduler import BatchHalted, BatchOptions, BatchOutcome, BatchReport, run_batches
from .stage import Stage, accumulate

__all__ = [
    "BatchHalted",
    "BatchOptions",
    "BatchOutcome",
    "BatchReport",
    "Candidate",
    "Funnel",
    "RunFailure",
    "RunResult",
    "RunSummary",
    "Stage",
    "StageCount",
    "accumulate",
    "run_batches",
]
