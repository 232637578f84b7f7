"""FastAPI app factory and application lifespan.

The lifespan opens the shared resources once per process (Database,
ServiceCache, httpx client, RateFetcher) and stores them on ``app.state``
for the dependency providers in ``deps.py``.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from Bullion_Rate.config import Settings, get_settings
from Bullion_Rate.data.database import Database
from Bullion_Rate.logging_config import configure_logging
from Bullion_Rate.services._helpers import create_http_client
from Bullion_Rate.services.cache import ServiceCache
from Bullion_Rate.services.rate_fetcher import build_rate_fetcher
from Bullion_Rate.web.middleware import RequestLoggingMiddleware, register_exception_handlers

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open shared resources on startup and release them on shutdown."""
    settings: Settings = app.state.settings

    database = Database(settings.database_path)
    await database.connect()
    cache = ServiceCache(database=database)
    await cache.initialize()
    http_client = create_http_client()

    app.state.database = database
    app.state.cache = cache
    app.state.http_client = http_client
    app.state.fetcher = build_rate_fetcher(settings, http_client)

    logger.info(
        "Bullion Rate started: currency=%s ttl=%ds timezone=%s",
        settings.target_currency,
        settings.cache_ttl_seconds,
        settings.market_timezone,
    )
    try:
        yield
    finally:
        await http_client.aclose()
        await database.close()
        logger.info("Bullion Rate stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging()

    app = FastAPI(title="Bullion Rate", lifespan=lifespan)
    app.state.settings = settings or get_settings()

    register_exception_handlers(app)
    app.add_middleware(RequestLoggingMiddleware)

    from Bullion_Rate.web.routes import (
        cron_router,
        health_router,
        history_router,
        markets_router,
        price_router,
    )

    app.include_router(price_router)
    app.include_router(markets_router)
    app.include_router(history_router)
    app.include_router(cron_router)
    app.include_router(health_router)

    logger.info("Bullion Rate web app created")
    return app
