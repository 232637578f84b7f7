"""Shared fixtures for web route tests.

Provides a test FastAPI app whose price and health services run on the stub
fetcher and an in-memory database, so route tests never touch the network.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI

from Bullion_Rate.config import Settings
from Bullion_Rate.data.database import Database
from Bullion_Rate.data.repository import PriceRepository
from Bullion_Rate.services.cache import ServiceCache
from Bullion_Rate.services.extremes import DailyExtremesTracker
from Bullion_Rate.services.health import HealthService
from Bullion_Rate.services.pricing import PriceService
from Bullion_Rate.web.app import create_app
from Bullion_Rate.web.deps import get_health_service, get_price_service

if TYPE_CHECKING:
    from conftest import MutableClock, StubFetcher

CRON_SECRET = "s3cret-token"
IST = ZoneInfo("Asia/Kolkata")


@pytest.fixture()
def web_settings() -> Settings:
    """Settings with a cron secret and the default 60s TTL."""
    return Settings(
        DATABASE_PATH=":memory:",
        CRON_SECRET=CRON_SECRET,
        CACHE_TTL_SECONDS=60,
    )


@pytest.fixture()
def price_service(db: Database, stub_fetcher: StubFetcher, clock: MutableClock) -> PriceService:
    """PriceService over the stub fetcher and in-memory database."""
    repository = PriceRepository(db)
    return PriceService(
        fetcher=stub_fetcher,
        cache=ServiceCache(clock=clock),
        repository=repository,
        tracker=DailyExtremesTracker(repository, timezone=IST, clock=clock),
        ttl_seconds=60,
        clock=clock,
    )


@pytest.fixture()
def app(
    web_settings: Settings,
    price_service: PriceService,
    db: Database,
    stub_fetcher: StubFetcher,
) -> FastAPI:
    """Create a test app with service dependencies overridden."""
    test_app = create_app(web_settings)

    async def override_price_service() -> PriceService:
        return price_service

    async def override_health_service() -> HealthService:
        return HealthService(database=db, fetcher=stub_fetcher)

    test_app.dependency_overrides[get_price_service] = override_price_service
    test_app.dependency_overrides[get_health_service] = override_health_service
    return test_app


@pytest_asyncio.fixture()
async def client(app: FastAPI) -> AsyncGenerator[httpx.AsyncClient]:
    """Async client bound to the test app through ASGITransport."""
    transport = httpx.ASGITransport(app=app)  # type: ignore[arg-type]
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
