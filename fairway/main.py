from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Release worker threads and the browser on shutdown."""
    try:
        yield
    finally:
        from fairway.services.course_scraping_service import get_course_scraping_service

        get_course_scraping_service().shutdown()
        logging.getLogger(__name__).info("Scraping workers stopped")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    from fairway.config import load_env_files

    load_env_files()
    _configure_logging()

    application = FastAPI(
        title="Fairway Harvest API",
        version="0.1.0",
        lifespan=_lifespan,
    )

    from fairway.api.routers import course_scraping_router

    application.include_router(course_scraping_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return application
