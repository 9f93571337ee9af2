"""Tests for cache key derivation."""

from __future__ import annotations

import re

from talentflow.cache.keys import make_key, normalize_params, normalize_text


def test_normalize_text_casefolds_and_collapses_whitespace() -> None:
    assert normalize_text("  Ada   LOVELACE\t\n") == "ada lovelace"


def test_logically_identical_lookups_share_a_key() -> None:
    a = make_key("serpapi_scholar", {"q": "Ada  Lovelace", "hl": "en"})
    b = make_key("serpapi_scholar", {"hl": "EN", "q": "ada lovelace "})
    assert a == b


def test_different_collaborators_do_not_collide() -> None:
    assert make_key("pdl", "ada") != make_key("github", "ada")


def test_key_is_filesystem_safe() -> None:
    key = make_key("Serp API/Patents", {"inventor": "José Núñez"})
    assert re.fullmatch(r"[a-z0-9_-]+", key)
    assert key.startswith("serp_api_patents_")


def test_sequences_keep_their_order() -> None:
    assert normalize_params(["b", "a"]) != normalize_params(["a", "b"])
