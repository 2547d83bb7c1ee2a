"""
Run golf course scraping from CLI.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
from collections.abc import Sequence

from fairway.config import load_env_files
from fairway.scraping.types import ScrapeOptions, ScrapeTarget
from fairway.services.course_scraping_service import CourseScrapingService


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Scrape golf course websites.")
    parser.add_argument(
        "--targets",
        dest="targets_path",
        default=None,
        help="JSON targets file. Defaults to GOLF_SCRAPE_TARGETS_PATH.",
    )
    parser.add_argument(
        "--target",
        dest="target_ids",
        action="append",
        default=None,
        help="Target id from the targets file. Repeat to select several.",
    )
    parser.add_argument(
        "--url",
        dest="url",
        default=None,
        help="Scrape one URL instead of the targets file.",
    )
    parser.add_argument("--name", dest="name", default=None, help="Course name for --url.")
    parser.add_argument(
        "--source-type",
        dest="source_type",
        choices=["official", "directory", "community"],
        default="official",
    )
    parser.add_argument("--javascript", action="store_true", help="Force browser rendering.")
    parser.add_argument("--screenshots", action="store_true", help="Save rendered screenshots.")
    parser.add_argument("--timeout", type=float, default=None, help="Per-request timeout in seconds.")
    parser.add_argument(
        "--full",
        action="store_true",
        help="Include the full extraction result for each course.",
    )
    return parser


def main(
    argv: Sequence[str] | None = None,
    *,
    service: CourseScrapingService | None = None,
) -> int:
    args = build_parser().parse_args(argv)

    load_env_files()
    log_level = os.getenv("LOG_LEVEL", "WARNING").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.WARNING),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    options = ScrapeOptions(
        timeout=args.timeout,
        javascript=args.javascript,
        screenshots=args.screenshots,
    )
    service = service or CourseScrapingService()
    try:
        if args.url:
            target = ScrapeTarget(
                id="cli-target",
                name=args.name or args.url,
                url=args.url,
                source_type=args.source_type,
            )
            summary = service.scrape_batch([target], options)
        else:
            summary = service.scrape_from_file(
                targets_path=args.targets_path,
                target_ids=args.target_ids,
                options=options,
            )
    finally:
        service.shutdown()

    payload = {
        "total": summary.total,
        "succeeded": summary.succeeded,
        "failed": summary.failed,
        "courses": [
            {
                "target_id": course.target_id,
                "name": course.name,
                "url": course.url,
                "status": course.status,
                "confidence": course.confidence,
                "method": course.method,
                "attempts": course.attempts,
                "errors": course.errors,
                **(
                    {"result": course.result.to_dict()}
                    if args.full and course.result is not None
                    else {}
                ),
            }
            for course in summary.courses
        ],
    }
    print(json.dumps(payload, indent=2, default=str))
    return 0 if summary.succeeded or not summary.total else 1


if __name__ == "__main__":
    raise SystemExit(main())
