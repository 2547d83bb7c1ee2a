"""
Environment + JSON config loader for course scraping.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path

from fairway.config import load_env_files, project_root
from fairway.scraping.config.models import DEFAULT_USER_AGENT, ScrapingSettings
from fairway.scraping.types import PRIORITIES, SOURCE_TYPES, ScrapeTarget, TargetMetadata


def _get_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    stripped = raw.strip()
    return stripped if stripped else default


def _resolve_path(raw_path: str) -> Path:
    candidate = Path(raw_path)
    if candidate.is_absolute():
        return candidate
    return (project_root() / candidate).resolve()


@lru_cache(maxsize=1)
def get_scraping_settings() -> ScrapingSettings:
    """
    Return cached scraper settings from environment variables.
    """

    load_env_files()
    return ScrapingSettings(
        user_agent=_get_str_env("GOLF_SCRAPE_USER_AGENT", DEFAULT_USER_AGENT),
        timeout_seconds=max(
            1.0,
            _get_float_env("GOLF_SCRAPE_TIMEOUT_SECONDS", 30.0),
        ),
        max_redirects=max(
            0,
            _get_int_env("GOLF_SCRAPE_MAX_REDIRECTS", 5),
        ),
        max_concurrency=min(
            10,
            max(1, _get_int_env("GOLF_SCRAPE_MAX_CONCURRENCY", 3)),
        ),
        max_queue_size=max(
            1,
            _get_int_env("GOLF_SCRAPE_MAX_QUEUE_SIZE", 100),
        ),
        max_attempts=max(
            1,
            _get_int_env("GOLF_SCRAPE_MAX_ATTEMPTS", 3),
        ),
        backoff_initial_seconds=max(
            0.1,
            _get_float_env("GOLF_SCRAPE_BACKOFF_INITIAL_SECONDS", 1.0),
        ),
        backoff_multiplier=max(
            1.0,
            _get_float_env("GOLF_SCRAPE_BACKOFF_MULTIPLIER", 2.0),
        ),
        backoff_max_seconds=max(
            1.0,
            _get_float_env("GOLF_SCRAPE_BACKOFF_MAX_SECONDS", 60.0),
        ),
        default_crawl_delay_seconds=max(
            0.0,
            _get_float_env("GOLF_SCRAPE_DEFAULT_CRAWL_DELAY_SECONDS", 2.0),
        ),
        robots_cache_ttl_seconds=max(
            60.0,
            _get_float_env("GOLF_SCRAPE_ROBOTS_CACHE_TTL_SECONDS", 24 * 60 * 60),
        ),
        robots_timeout_seconds=max(
            1.0,
            _get_float_env("GOLF_SCRAPE_ROBOTS_TIMEOUT_SECONDS", 10.0),
        ),
        allow_when_robots_unreachable=_get_bool_env(
            "GOLF_SCRAPE_ALLOW_WHEN_ROBOTS_UNREACHABLE",
            True,
        ),
        dynamic_confidence_threshold=min(
            100,
            max(0, _get_int_env("GOLF_SCRAPE_DYNAMIC_CONFIDENCE_THRESHOLD", 30)),
        ),
        enable_dynamic=_get_bool_env("GOLF_SCRAPE_ENABLE_DYNAMIC", True),
        max_browsers=min(
            10,
            max(1, _get_int_env("GOLF_SCRAPE_MAX_BROWSERS", 3)),
        ),
        circuit_failure_threshold=max(
            1,
            _get_int_env("GOLF_SCRAPE_CIRCUIT_FAILURE_THRESHOLD", 5),
        ),
        circuit_cooldown_seconds=max(
            1.0,
            _get_float_env("GOLF_SCRAPE_CIRCUIT_COOLDOWN_SECONDS", 300.0),
        ),
        screenshot_dir=str(
            _resolve_path(_get_str_env("GOLF_SCRAPE_SCREENSHOT_DIR", "media/screenshots"))
        ),
        targets_path=str(
            _resolve_path(_get_str_env("GOLF_SCRAPE_TARGETS_PATH", "config/targets.json"))
        ),
    )


def load_scrape_targets(*, targets_path: str) -> list[ScrapeTarget]:
    """
    Load scrape targets from a JSON file shaped like {"targets": [...]}.

    Entries without a url, or with an unknown priority/source type, are skipped.
    """

    path = _resolve_path(targets_path)
    if not path.exists():
        raise FileNotFoundError(f"Scrape targets file not found: {path}")

    raw_data = json.loads(path.read_text(encoding="utf-8"))
    entries = raw_data.get("targets", []) if isinstance(raw_data, dict) else raw_data
    if not isinstance(entries, list):
        raise ValueError("Invalid targets file: 'targets' must be a list.")

    parsed: list[ScrapeTarget] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            continue

        url = _optional_str(entry.get("url"))
        if url is None:
            continue
        name = _optional_str(entry.get("name")) or url
        target_id = _optional_str(entry.get("id")) or f"target-{index + 1}"

        priority = (_optional_str(entry.get("priority")) or "medium").lower()
        source_type = (
            _optional_str(entry.get("source_type") or entry.get("sourceType")) or "official"
        ).lower()
        if priority not in PRIORITIES or source_type not in SOURCE_TYPES:
            continue

        parsed.append(
            ScrapeTarget(
                id=target_id,
                name=name,
                url=url,
                priority=priority,  # type: ignore[arg-type]
                source_type=source_type,  # type: ignore[arg-type]
                selectors=normalize_selectors(entry.get("selectors", {})),
                metadata=_normalize_metadata(entry.get("metadata")),
            )
        )

    return parsed


def normalize_selectors(selectors: object) -> dict[str, list[str]]:
    if not isinstance(selectors, dict):
        return {}

    normalized: dict[str, list[str]] = {}
    for key, value in selectors.items():
        if not isinstance(key, str):
            continue
        if isinstance(value, str):
            selector_list = [value.strip()] if value.strip() else []
        elif isinstance(value, list):
            selector_list = [
                item.strip()
                for item in value
                if isinstance(item, str) and item.strip()
            ]
        else:
            selector_list = []
        normalized[_snake_case(key.strip())] = selector_list
    return normalized


def _normalize_metadata(metadata: object) -> TargetMetadata:
    if not isinstance(metadata, dict):
        return TargetMetadata()
    return TargetMetadata(
        success_count=_optional_int(metadata.get("success_count", metadata.get("successCount"))),
        failure_count=_optional_int(metadata.get("failure_count", metadata.get("failureCount"))),
        avg_response_time=_optional_float(
            metadata.get("avg_response_time", metadata.get("avgResponseTime"))
        )
        or 0.0,
    )


def _snake_case(value: str) -> str:
    chars: list[str] = []
    for char in value:
        if char.isupper():
            if chars:
                chars.append("_")
            chars.append(char.lower())
        else:
            chars.append(char)
    return "".join(chars).replace("-", "_")


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def _optional_float(value: object) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _optional_int(value: object) -> int:
    if value is None or isinstance(value, bool):
        return 0
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0
