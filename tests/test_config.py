"""
Tests for settings resolution.

An explicit ``env`` mapping is passed so the host environment and any
``.env`` file never leak into the results.
"""

from __future__ import annotations

from pathlib import Path

import pytest  # type: ignore

from talentflow.cache import ExpiryMode
from talentflow.config import Settings, load_settings
from talentflow.errors import ConfigError


def _write(tmp_path: Path, text: str) -> str:
    path = tmp_path / "talentflow.yaml"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_defaults_without_sources() -> None:
    settings = load_settings(env={})
    assert settings == Settings()
    assert settings.politeness_delay == 2.0
    assert settings.missing_keys() == ["SERPAPI_API_KEY", "PDL_API_KEY"]


def test_environment_overrides_yaml(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        "llm_provider: ollama\ncache_expiry_hours: 24\napi_delay_ms: 500\ncache_dir: /tmp/yaml-cache\n",
    )
    settings = load_settings(path, env={"LLM_PROVIDER": "openai", "SERPAPI_API_KEY": "serp", "API_DELAY_MS": "250"})
    assert settings.llm_provider == "openai"
    assert settings.serpapi_api_key == "serp"
    assert settings.cache_expiry_hours == 24.0
    assert settings.api_delay_ms == 250
    assert settings.politeness_delay == 0.25
    assert settings.cache_dir == "/tmp/yaml-cache"


def test_gemini_key_wins_over_google_key() -> None:
    assert load_settings(env={"GOOGLE_API_KEY": "g"}).gemini_api_key == "g"
    assert load_settings(env={"GOOGLE_API_KEY": "g", "GEMINI_API_KEY": "m"}).gemini_api_key == "m"


def test_stage_overrides(tmp_path: Path) -> None:
    path = _write(tmp_path, "stages:\n  publications:\n    batch_size: 2\n    inter_batch_delay: 5\n")
    settings = load_settings(path, env={})
    assert settings.stages == {"publications": {"batch_size": 2, "inter_batch_delay": 5}}


@pytest.mark.parametrize(
    "text",
    [
        "stages:\n  publications:\n    concurrency: 4\n",
        "stages: [1, 2]\n",
        "request_timeout: soon\n",
        "cache_expiry_hours: -1\n",
        "- just\n- a list\n",
        "key: [unclosed\n",
    ],
)
def test_invalid_yaml_raises_config_error(tmp_path: Path, text: str) -> None:
    with pytest.raises(ConfigError):
        load_settings(_write(tmp_path, text), env={})


def test_missing_file_raises_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_settings(str(tmp_path / "absent.yaml"), env={})


def test_cache_policy_modes() -> None:
    settings = Settings(cache_expiry_hours=2)
    assert settings.cache_policy().ttl_seconds == 7200
    assert settings.cache_policy().mode is ExpiryMode.TTL
    assert settings.cache_policy("never").mode is ExpiryMode.NEVER
    assert settings.cache_policy("always").mode is ExpiryMode.ALWAYS
    assert Settings(cache_expiry_hours=0).cache_policy().mode is ExpiryMode.NEVER


@pytest.mark.parametrize(
    "options",
    [
        "{batch_size: 0}",
        "{batch_size: abc}",
        "{inter_batch_delay: -2}",
        "{per_item_timeout: 0}",
        "{batch_size: null}",
    ],
)
def test_stage_override_values_are_validated_at_load(tmp_path: Path, options: str) -> None:
    path = _write(tmp_path, f"stages:\n  profile: {options}\n")
    with pytest.raises(ConfigError) as info:
        load_settings(path, env={})
    assert "stages.profile" in str(info.value)


def test_stage_override_values_are_normalised(tmp_path: Path) -> None:
    path = _write(tmp_path, "stages:\n  patents: {batch_size: '2', per_item_timeout: 30}\n")
    settings = load_settings(path, env={})
    assert settings.stages == {"patents": {"batch_size": 2, "per_item_timeout": 30.0}}
    assert isinstance(settings.stages["patents"]["batch_size"], int)


def test_unknown_stage_name_is_warned_about(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    path = _write(tmp_path, "stages:\n  publicatons: {batch_size: 2}\n")
    with caplog.at_level("WARNING", logger="talentflow.config"):
        load_settings(path, env={})
    assert "publicatons" in caplog.text
