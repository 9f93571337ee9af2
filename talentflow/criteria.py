"""
Filter criteria.

Criteria files may use either ``snake_case`` or ``camelCase`` keys and
either a nested layout::

    education: {degree: PhD, field_of_study: AI}
    publications: {min_citations: 100}
    patents: {filed_patent: true}
    experience: {min_years: 3}

or the flat layout used by the web client, where the education keys sit
at the top level next to the nested sections.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, Mapping, Optional

from .errors import ConfigError

logger = logging.getLogger(__name__)

_ACRONYM_RE = re.compile(r"([A-Z]+)([A-Z][a-z])")
_CAMEL_RE = re.compile(r"([a-z0-9])([A-Z])")


def _snake(key: str) -> str:
    return _CAMEL_RE.sub(r"\1_\2", _ACRONYM_RE.sub(r"\1_\2", key)).lower().replace("-", "_")


@dataclass
class EducationCriteria:
    degree: Optional[str] = None
    field_of_study: Optional[str] = None
    institute_tier: Optional[str] = None


@dataclass
class PublicationCriteria:
    min_publications: int = 0
    min_citations: int = 0
    min_h_index: int = 0
    has_top_ai_conferences: bool = False
    has_other_ai_conferences: bool = False
    has_reputable_journals: bool = False
    has_other_journals: bool = False
    experience_bracket: Optional[str] = None


@dataclass
class PatentCriteria:
    granted_first_inventor: bool = False
    granted_co_inventor: bool = False
    filed_patent: bool = False


@dataclass
class ExperienceCriteria:
    min_years: Optional[float] = None


@dataclass
class FilterCriteria:
    education: EducationCriteria = field(default_factory=EducationCriteria)
    publications: PublicationCriteria = field(default_factory=PublicationCriteria)
    patents: PatentCriteria = field(default_factory=PatentCriteria)
    experience: ExperienceCriteria = field(default_factory=ExperienceCriteria)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "FilterCriteria":
        """Build criteria from a JSON/YAML mapping.

        Raises:
            ConfigError: If a section is not a mapping or a value has the
                wrong type.
        """
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ConfigError(f"criteria must be a mapping, got {type(data).__name__}")
        flat = {_snake(k): v for k, v in data.items()}
        education_data = flat.pop("education", None) or {}
        if not isinstance(education_data, Mapping):
            raise ConfigError("criteria section 'education' must be a mapping")
        education_data = {_snake(k): v for k, v in education_data.items()}
        for key in ("degree", "field_of_study", "institute_tier"):
            if key in flat:
                education_data.setdefault(key, flat.pop(key))
        publications_data = flat.pop("publications", None) or {}
        if not isinstance(publications_data, Mapping):
            raise ConfigError("criteria section 'publications' must be a mapping")
        publications_data = {_snake(k): v for k, v in publications_data.items()}
        if "experience_bracket" in flat:
            publications_data.setdefault("experience_bracket", flat.pop("experience_bracket"))
        return cls(
            education=_section(EducationCriteria, education_data, "education"),
            publications=_section(PublicationCriteria, publications_data, "publications"),
            patents=_section(PatentCriteria, flat.pop("patents", None), "patents"),
            experience=_section(ExperienceCriteria, flat.pop("experience", None), "experience"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _coerce(name: str, value: Any, default: Any, section: str) -> Any:
    if value is None or value == "":
        return default
    try:
        if isinstance(default, bool):
            if isinstance(value, str):
                return value.strip().lower() in ("1", "true", "yes", "on")
            return bool(value)
        if isinstance(default, int):
            return int(value)
        if name == "min_years":
            return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{section}.{name}: invalid value {value!r}") from exc
    return str(value)


def _section(cls, data: Any, section: str):
    if data is None:
        return cls()
    if not isinstance(data, Mapping):
        raise ConfigError(f"criteria section '{section}' must be a mapping")
    defaults = cls()
    known = {f.name for f in fields(cls)}
    values: Dict[str, Any] = {}
    for raw_key, value in data.items():
        key = _snake(raw_key)
        if key in ("enabled",):
            continue
        if key not in known:
            logger.warning("Ignoring unknown criteria key %s.%s", section, raw_key)
            continue
        values[key] = _coerce(key, value, getattr(defaults, key), section)
    return cls(**values)
