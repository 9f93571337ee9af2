"""
Command line interface for talentflow.

``search`` runs discovery plus the enrichment funnel and writes the run
summary as JSON (and optionally the survivors as CSV).  ``cache``
inspects and prunes the shared response cache.

Exit status is 0 on success, 1 for configuration errors and 2 when a
critical collaborator failure aborted the run.
"""

from __future__ import annotations

import argparse
import asyncio
import csv
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List

import yaml  # type: ignore

from .cache import CacheStore
from .config import Settings, load_settings
from .criteria import FilterCriteria
from .errors import ConfigError
from .pipeline import RunFailure
from .runner import run_profile_search

logger = logging.getLogger("talentflow.cli")

CSV_FIELDS = [
    "username",
    "name",
    "url",
    "degree",
    "field_of_study",
    "institute",
    "institute_tier",
    "publications",
    "citations",
    "h_index",
    "granted_first_inventor",
    "granted_co_inventor",
    "filed_patent",
    "github_username",
    "repo_volume",
    "popularity",
    "years_of_experience",
    "top_ai_organizations",
]


def _load_criteria(path: str) -> FilterCriteria:
    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.endswith((".yaml", ".yml")):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
    except OSError as exc:
        raise ConfigError(f"cannot read criteria file {path}: {exc}") from exc
    except (ValueError, yaml.YAMLError) as exc:
        raise ConfigError(f"failed to parse criteria file {path}: {exc}") from exc
    return FilterCriteria.from_dict(data)


def _csv_row(candidate: Dict[str, Any]) -> Dict[str, Any]:
    facts = candidate.get("facts") or {}
    education = facts.get("education") or {}
    pubs = facts.get("publications") or {}
    patents = facts.get("patents") or {}
    github = facts.get("github") or {}
    experience = facts.get("experience") or {}
    return {
        "username": candidate.get("username"),
        "name": candidate.get("name"),
        "url": candidate.get("url"),
        "degree": education.get("degree"),
        "field_of_study": education.get("field_of_study"),
        "institute": education.get("institute"),
        "institute_tier": education.get("institute_tier"),
        "publications": pubs.get("publications"),
        "citations": pubs.get("citations"),
        "h_index": pubs.get("h_index"),
        "granted_first_inventor": patents.get("granted_first_inventor"),
        "granted_co_inventor": patents.get("granted_co_inventor"),
        "filed_patent": patents.get("filed_patent"),
        "github_username": github.get("username"),
        "repo_volume": github.get("repo_volume"),
        "popularity": github.get("popularity"),
        "years_of_experience": experience.get("years_of_experience"),
        "top_ai_organizations": "; ".join(experience.get("top_ai_organizations") or []),
    }


def write_survivors_csv(survivors: List[Dict[str, Any]], path: str) -> None:
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for candidate in survivors:
            writer.writerow(_csv_row(candidate))


def cmd_search(args: argparse.Namespace) -> int:
    """Run the profile search and write the summary."""
    settings = load_settings(args.config)
    criteria = _load_criteria(args.criteria)
    result = asyncio.run(
        run_profile_search(
            settings,
            criteria,
            max_results=args.max_results,
            max_candidates=args.max_candidates,
            policy=settings.cache_policy(args.cache_mode),
        )
    )
    payload = result.to_dict()
    if args.out:
        Path(args.out).parent.mkdir(parents=True, exist_ok=True)
        with open(args.out, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False, default=str)
        logger.info("Summary written to %s", args.out)

    if isinstance(result, RunFailure):
        print(
            f"Run aborted in stage '{result.stage}' ({result.service}): {result.kind.value} - {result.message}. "
            f"Retry after {result.retry_after}s."
        )
        return 2

    counts = ", ".join(f"{c.name} {c.before}->{c.after}" for c in result.stage_counts)
    print(f"{len(result.survivors)} profiles passed all filters in {result.elapsed:.1f}s ({counts or 'no stages run'})")
    if args.csv:
        write_survivors_csv(payload["survivors"], args.csv)
        logger.info("Wrote %d rows to %s", len(payload["survivors"]), args.csv)
    if not args.out:
        print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))
    return 0


def _store(args: argparse.Namespace) -> CacheStore:
    settings: Settings = load_settings(args.config)
    return CacheStore(args.cache_dir or settings.cache_dir, settings.cache_policy())


def cmd_cache_stats(args: argparse.Namespace) -> int:
    stats = _store(args).stats()
    print(f"Entries: {stats.entries} (valid {stats.valid}, expired {stats.expired}), size {stats.total_mb} MB")
    return 0


def cmd_cache_clear(args: argparse.Namespace) -> int:
    removed = _store(args).clear_all(prefix=args.prefix)
    print(f"Removed {removed} cache entries")
    return 0


def cmd_cache_cleanup(args: argparse.Namespace) -> int:
    removed = _store(args).invalidate_expired()
    print(f"Removed {removed} expired cache entries")
    return 0


def main(argv: List[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="talentflow", description="Staged candidate enrichment")
    parser.add_argument("--config", help="Optional YAML configuration file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # Search
    search_cmd = subparsers.add_parser("search", help="Search and enrich candidate profiles")
    search_cmd.add_argument("--criteria", required=True, help="Filter criteria file (JSON or YAML)")
    search_cmd.add_argument("--max-results", type=int, default=20, dest="max_results", help="Profiles to return")
    search_cmd.add_argument(
        "--max-candidates",
        type=int,
        dest="max_candidates",
        help="Candidates entering the funnel (default: 3x max results)",
    )
    search_cmd.add_argument("--out", help="Write the JSON summary to this file")
    search_cmd.add_argument("--csv", help="Also write surviving profiles to this CSV file")
    search_cmd.add_argument(
        "--cache-mode",
        choices=["ttl", "never", "always"],
        dest="cache_mode",
        help="Force cache expiry: ttl (normal), never (ignore age) or always (refetch)",
    )
    search_cmd.set_defaults(func=cmd_search)

    # Cache
    cache_cmd = subparsers.add_parser("cache", help="Inspect or prune the response cache")
    cache_cmd.add_argument("--cache-dir", dest="cache_dir", help="Cache directory (default from settings)")
    cache_sub = cache_cmd.add_subparsers(dest="subcommand", required=True)
    stats_cmd = cache_sub.add_parser("stats", help="Show entry counts and size")
    stats_cmd.set_defaults(func=cmd_cache_stats)
    clear_cmd = cache_sub.add_parser("clear", help="Remove all entries")
    clear_cmd.add_argument("--prefix", help="Only remove entries of this collaborator, e.g. serpapi_patents")
    clear_cmd.set_defaults(func=cmd_cache_clear)
    cleanup_cmd = cache_sub.add_parser("cleanup", help="Remove expired and corrupt entries")
    cleanup_cmd.set_defaults(func=cmd_cache_cleanup)

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="[%(levelname)s] %(message)s")
    try:
        return args.func(args)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
