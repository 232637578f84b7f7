"""Dependency injection providers for FastAPI route handlers.

All shared resources (Database, ServiceCache, RateFetcher, Settings) are
created once during application lifespan and stored on ``app.state``. Route
handlers never construct these directly: they declare dependencies and
FastAPI injects them.
"""

import logging
import secrets
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request

from Bullion_Rate.analysis.formula import MarkupFactors
from Bullion_Rate.config import Settings
from Bullion_Rate.data.database import Database
from Bullion_Rate.data.repository import PriceRepository
from Bullion_Rate.services.cache import ServiceCache
from Bullion_Rate.services.extremes import DailyExtremesTracker
from Bullion_Rate.services.health import HealthService
from Bullion_Rate.services.pricing import MarketDataFetcher, PriceService

logger = logging.getLogger(__name__)

_BEARER_PREFIX = "Bearer "


async def get_app_settings(request: Request) -> Settings:
    """Return the Settings the application was created with."""
    settings: Settings = request.app.state.settings
    return settings


async def get_database(request: Request) -> AsyncGenerator[Database]:
    """Yield the Database instance from application state.

    The Database is created during application lifespan startup and stored
    in ``app.state.database``. This dependency yields it for the duration
    of the request.
    """
    db: Database = request.app.state.database
    yield db


async def get_repository(
    db: Annotated[Database, Depends(get_database)],
) -> PriceRepository:
    """Return a PriceRepository backed by the shared Database."""
    return PriceRepository(db)


async def get_cache(request: Request) -> ServiceCache:
    """Return the app-wide ServiceCache so cached prices persist across requests."""
    cache: ServiceCache = request.app.state.cache
    return cache


async def get_rate_fetcher(request: Request) -> MarketDataFetcher:
    """Return the app-wide RateFetcher sharing one httpx client."""
    fetcher: MarketDataFetcher = request.app.state.fetcher
    return fetcher


async def get_tracker(
    repository: Annotated[PriceRepository, Depends(get_repository)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> DailyExtremesTracker:
    """Return a DailyExtremesTracker keyed to the configured market timezone."""
    return DailyExtremesTracker(repository, timezone=settings.timezone)


async def get_price_service(
    fetcher: Annotated[MarketDataFetcher, Depends(get_rate_fetcher)],
    cache: Annotated[ServiceCache, Depends(get_cache)],
    repository: Annotated[PriceRepository, Depends(get_repository)],
    tracker: Annotated[DailyExtremesTracker, Depends(get_tracker)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> PriceService:
    """Return a PriceService wired to the shared cache, fetcher, and store."""
    return PriceService(
        fetcher=fetcher,
        cache=cache,
        repository=repository,
        tracker=tracker,
        currency=settings.target_currency,
        markups=MarkupFactors(
            import_duty=settings.import_duty_rate,
            tax=settings.tax_rate,
            premium=settings.premium_rate,
        ),
        ttl_seconds=settings.cache_ttl_seconds,
    )


async def get_health_service(
    db: Annotated[Database, Depends(get_database)],
    fetcher: Annotated[MarketDataFetcher, Depends(get_rate_fetcher)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> HealthService:
    """Return a HealthService with the shared Database and RateFetcher."""
    return HealthService(database=db, fetcher=fetcher, currency=settings.target_currency)


async def require_cron_secret(
    settings: Annotated[Settings, Depends(get_app_settings)],
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """Reject scheduled-job calls without ``Authorization: Bearer <CRON_SECRET>``.

    When no secret is configured every caller is allowed.
    """
    if not settings.cron_secret:
        return

    supplied = ""
    if authorization and authorization.startswith(_BEARER_PREFIX):
        supplied = authorization[len(_BEARER_PREFIX) :]

    if not secrets.compare_digest(supplied, settings.cron_secret):
        logger.warning("Rejected scheduled job call with missing or invalid secret.")
        raise HTTPException(status_code=401, detail="Unauthorized")
