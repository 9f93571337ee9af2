"""The record that moves through the funnel."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional


@dataclass
class Candidate:
    """One person under evaluation.

    ``profile`` holds the formatted profile produced by the first stage;
    ``facts`` accumulates one entry per enrichment stage, keyed by stage
    name.  A stage that could not find anything still records an entry
    (usually with an ``_empty_reason``) so later consumers can see why.
    """

    username: str
    url: str = ""
    title: str = ""
    snippet: str = ""
    name: Optional[str] = None
    profile: Dict[str, Any] = field(default_factory=dict)
    facts: Dict[str, Any] = field(default_factory=dict)

    @property
    def display_name(self) -> str:
        return self.name or self.profile.get("full_name") or self.username

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
