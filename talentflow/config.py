"""
Runtime configuration.

Values are resolved in this order, later sources winning:

1. defaults on :class:`Settings`;
2. an optional YAML file whose top-level keys are the lower-case
   setting names (``cache_dir``, ``llm_provider``...) plus a
   ``stages:`` mapping of per-stage batching overrides;
3. environment variables, after ``.env`` has been loaded with
   python-dotenv.

Example YAML::

    llm_provider: ollama
    cache_expiry_hours: 0
    stages:
      publications: {batch_size: 2, inter_batch_delay: 5}
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv

from .cache import CachePolicy, ExpiryMode
from .enrich import STAGE_NAMES
from .errors import ConfigError
from .pipeline.scheduler import BatchOptions

logger = logging.getLogger(__name__)

_STAGE_KEYS = ("batch_size", "inter_batch_delay", "per_item_timeout")

# environment variable -> Settings field
ENV_KEYS: Dict[str, str] = {
    "SERPAPI_API_KEY": "serpapi_api_key",
    "PDL_API_KEY": "pdl_api_key",
    "GITHUB_TOKEN": "github_token",
    "LLM_PROVIDER": "llm_provider",
    "OPENAI_API_KEY": "openai_api_key",
    "OPENAI_MODEL": "openai_model",
    "GEMINI_API_KEY": "gemini_api_key",
    "GOOGLE_API_KEY": "gemini_api_key",
    "GEMINI_MODEL": "gemini_model",
    "OLLAMA_BASE_URL": "ollama_base_url",
    "OLLAMA_MODEL": "ollama_model",
    "TALENTFLOW_CACHE_DIR": "cache_dir",
    "CACHE_EXPIRY_HOURS": "cache_expiry_hours",
    "REQUEST_TIMEOUT": "request_timeout",
    "API_DELAY_MS": "api_delay_ms",
}


@dataclass
class Settings:
    serpapi_api_key: Optional[str] = None
    pdl_api_key: Optional[str] = None
    github_token: Optional[str] = None
    llm_provider: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-1.5-flash"
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.1"
    cache_dir: str = ".cache/talentflow"
    cache_expiry_hours: float = 720.0
    request_timeout: float = 30.0
    api_delay_ms: int = 2000
    stages: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @property
    def politeness_delay(self) -> float:
        return self.api_delay_ms / 1000.0

    def cache_policy(self, mode: Optional[str] = None) -> CachePolicy:
        """Build the cache policy; ``mode`` (``ttl|never|always``) forces the expiry mode."""
        forced = ExpiryMode(mode) if mode else None
        return CachePolicy.from_hours(self.cache_expiry_hours, forced)

    def missing_keys(self) -> list:
        missing = []
        if not self.serpapi_api_key:
            missing.append("SERPAPI_API_KEY")
        if not self.pdl_api_key:
            missing.append("PDL_API_KEY")
        return missing


def _coerce(name: str, value: Any) -> Any:
    numeric = {"cache_expiry_hours": float, "request_timeout": float, "api_delay_ms": int}
    if name in numeric:
        try:
            result = numeric[name](value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"{name}: expected a number, got {value!r}") from exc
        if result < 0:
            raise ConfigError(f"{name}: must not be negative, got {value!r}")
        return result
    return None if value is None else str(value)


def _stage_overrides(raw: Any) -> Dict[str, Dict[str, Any]]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ConfigError("'stages' must be a mapping of stage name to options")
    overrides: Dict[str, Dict[str, Any]] = {}
    for stage, options in raw.items():
        if not isinstance(options, Mapping):
            raise ConfigError(f"stages.{stage} must be a mapping")
        unknown = set(options) - set(_STAGE_KEYS)
        if unknown:
            raise ConfigError(f"stages.{stage}: unknown option(s) {sorted(unknown)}")
        try:
            merged = BatchOptions().merged(options)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"stages.{stage}: {exc}") from exc
        if stage not in STAGE_NAMES:
            logger.warning("Ignoring overrides for unknown stage '%s' (known: %s)", stage, ", ".join(STAGE_NAMES))
        overrides[str(stage)] = {key: getattr(merged, key) for key in options}
    return overrides


def load_yaml(config_path: str | os.PathLike[str]) -> Dict[str, Any]:
    path = Path(config_path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as exc:
        raise ConfigError(f"configuration file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"failed to parse YAML configuration {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    logger.info("Loaded configuration from %s", path)
    return data


def load_settings(config_path: Optional[str] = None, *, env: Optional[Mapping[str, str]] = None) -> Settings:
    """Resolve settings from defaults, an optional YAML file and the environment.

    Args:
        config_path: Optional YAML file.
        env: Environment mapping; defaults to ``os.environ`` after loading
            ``.env``.

    Returns:
        The resolved :class:`Settings`.

    Raises:
        ConfigError: For unreadable YAML or invalid values.
    """
    if env is None:
        load_dotenv()
        env = os.environ
    values: Dict[str, Any] = {}
    names = {f.name for f in fields(Settings)}

    if config_path:
        data = load_yaml(config_path)
        for key, value in data.items():
            if key == "stages":
                values["stages"] = _stage_overrides(value)
            elif key in names:
                values[key] = _coerce(key, value)
            else:
                logger.warning("Ignoring unknown configuration key '%s'", key)

    for env_key, name in ENV_KEYS.items():
        value = env.get(env_key)
        if value:
            # GOOGLE_API_KEY only fills in when GEMINI_API_KEY is absent
            if env_key == "GOOGLE_API_KEY" and env.get("GEMINI_API_KEY"):
                continue
            values[name] = _coerce(name, value)

    settings = Settings(**values)
    for key in settings.missing_keys():
        logger.warning("%s is not set; lookups that need it will fail", key)
    return settings
