"""
tests/test_scraping_config.py

Pytest unit tests for scraping settings and target file loading.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from fairway.scraping.config import get_scraping_settings, load_scrape_targets
from fairway.scraping.config.loader import normalize_selectors
from fairway.scraping.types import ScrapeTarget


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_scraping_settings.cache_clear()
    yield
    get_scraping_settings.cache_clear()


def test_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "GOLF_SCRAPE_TIMEOUT_SECONDS",
        "GOLF_SCRAPE_MAX_CONCURRENCY",
        "GOLF_SCRAPE_MAX_ATTEMPTS",
        "GOLF_SCRAPE_DEFAULT_CRAWL_DELAY_SECONDS",
        "GOLF_SCRAPE_CIRCUIT_FAILURE_THRESHOLD",
        "GOLF_SCRAPE_CIRCUIT_COOLDOWN_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = get_scraping_settings()

    assert settings.timeout_seconds == 30.0
    assert settings.max_concurrency == 3
    assert settings.max_attempts == 3
    assert settings.default_crawl_delay_seconds == 2.0
    assert settings.robots_cache_ttl_seconds == 24 * 60 * 60
    assert settings.circuit_failure_threshold == 5
    assert settings.circuit_cooldown_seconds == 300.0


def test_settings_read_and_clamp_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GOLF_SCRAPE_TIMEOUT_SECONDS", "12.5")
    monkeypatch.setenv("GOLF_SCRAPE_MAX_CONCURRENCY", "50")
    monkeypatch.setenv("GOLF_SCRAPE_MAX_ATTEMPTS", "not-a-number")
    monkeypatch.setenv("GOLF_SCRAPE_ALLOW_WHEN_ROBOTS_UNREACHABLE", "false")
    monkeypatch.setenv("GOLF_SCRAPE_USER_AGENT", "  ")

    settings = get_scraping_settings()

    assert settings.timeout_seconds == 12.5
    assert settings.max_concurrency == 10
    assert settings.max_attempts == 3
    assert settings.allow_when_robots_unreachable is False
    assert "GolfCourseBot" in settings.user_agent


def test_breaker_and_browser_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GOLF_SCRAPE_MAX_BROWSERS", "40")
    monkeypatch.setenv("GOLF_SCRAPE_CIRCUIT_FAILURE_THRESHOLD", "0")
    monkeypatch.setenv("GOLF_SCRAPE_CIRCUIT_COOLDOWN_SECONDS", "90")

    settings = get_scraping_settings()

    assert settings.max_browsers == 10
    assert settings.circuit_failure_threshold == 1
    assert settings.circuit_cooldown_seconds == 90.0


def test_load_targets_skips_invalid_entries(tmp_path: Path) -> None:
    path = tmp_path / "targets.json"
    path.write_text(
        json.dumps(
            {
                "targets": [
                    {
                        "id": "pebble",
                        "name": "Pebble Beach Golf Links",
                        "url": "https://pebble.example/",
                        "priority": "HIGH",
                        "sourceType": "official",
                        "selectors": {"courseName": ["h1.title"], "greensFee": ".fees"},
                        "metadata": {"successCount": 4, "avgResponseTime": 812.5},
                    },
                    {"name": "No url"},
                    {"url": "https://bad.example/", "priority": "urgent"},
                    "not-a-dict",
                    {"url": "https://dir.example/listing", "source_type": "directory"},
                ]
            }
        ),
        encoding="utf-8",
    )

    targets = load_scrape_targets(targets_path=str(path))

    assert [target.id for target in targets] == ["pebble", "target-5"]
    assert targets[0].priority == "high"
    assert targets[0].selectors == {"course_name": ["h1.title"], "greens_fee": [".fees"]}
    assert targets[0].metadata.success_count == 4
    assert targets[0].metadata.avg_response_time == 812.5
    assert targets[1].name == "https://dir.example/listing"
    assert targets[1].source_type == "directory"


def test_load_targets_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_scrape_targets(targets_path=str(tmp_path / "missing.json"))


def test_normalize_selectors_ignores_bad_values() -> None:
    assert normalize_selectors({"par": ["  .par ", 3, ""], "holes": None}) == {
        "par": [".par"],
        "holes": [],
    }
    assert normalize_selectors(["h1"]) == {}


@pytest.mark.parametrize(
    "overrides",
    [
        {"url": ""},
        {"priority": "urgent"},
        {"source_type": "blog"},
    ],
)
def test_scrape_target_rejects_bad_input(overrides: dict) -> None:
    values = {"id": "x", "name": "X Golf", "url": "https://x.example/"}
    values.update(overrides)
    with pytest.raises(ValueError):
        ScrapeTarget(**values)
