"""Tests for PriceService: cached price, 24h change, extremes, and daily closes.

Uses a stub fetcher with call counters, a memory-only ServiceCache, and a
real in-memory SQLite repository.

Covers:
- Repeat and concurrent requests within the TTL share one upstream fetch
- Upstream failures propagate and are not cached
- Formula rejections propagate as InvalidInputError
- 24h change against the latest close before today
- Extremes: first request sets open == high == low, later prices extend them
- Storage failures degrade to a price without change or extremes
- Gold responses carry per-karat prices
- save_daily_close() saves once per local day, unless forced
- history() clamps the requested window
- Gold-silver ratio, USD view and combined view reuse the cached prices
- A reference currency that cannot be fetched is left out of the USD view
"""

from __future__ import annotations

import asyncio
import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

import pytest

from Bullion_Rate.data.database import Database
from Bullion_Rate.data.repository import PriceRepository
from Bullion_Rate.models import Currency, Metal, RatioInterpretation, StoredDailyPrice
from Bullion_Rate.services.cache import ServiceCache
from Bullion_Rate.services.extremes import DailyExtremesTracker
from Bullion_Rate.services.pricing import MAX_HISTORY_DAYS, PriceService
from Bullion_Rate.utils.exceptions import (
    InvalidInputError,
    StorageFailureError,
    UpstreamUnavailableError,
)

if TYPE_CHECKING:
    from conftest import MutableClock, StubFetcher

IST = ZoneInfo("Asia/Kolkata")


def _build_service(
    database: Database,
    fetcher: StubFetcher,
    clock: MutableClock,
    *,
    ttl_seconds: int = 60,
) -> PriceService:
    repository = PriceRepository(database)
    return PriceService(
        fetcher=fetcher,
        cache=ServiceCache(clock=clock),
        repository=repository,
        tracker=DailyExtremesTracker(repository, timezone=IST, clock=clock),
        ttl_seconds=ttl_seconds,
        clock=clock,
    )


def _close(date: datetime.date, per_gram: str) -> StoredDailyPrice:
    return StoredDailyPrice(
        date=date,
        metal=Metal.SILVER,
        price_per_gram=Decimal(per_gram),
        price_per_kilogram=Decimal(per_gram) * 1000,
        benchmark_quote=Decimal("29.80"),
        exchange_rate=Decimal("84.00"),
        source="yahoo+frankfurter",
        timestamp=datetime.datetime(2025, 1, 14, 12, 0, 0, tzinfo=datetime.UTC),
    )


@pytest.fixture()
def service(db: Database, stub_fetcher: StubFetcher, clock: MutableClock) -> PriceService:
    return _build_service(db, stub_fetcher, clock)


class TestCachedPrice:
    """Tests for get_price() and its cache behavior."""

    @pytest.mark.asyncio()
    async def test_worked_example(self, service: PriceService) -> None:
        price = await service.get_price(Metal.SILVER)
        assert price.price_per_gram == Decimal("91.11")
        assert price.source == "stub+stub-fx"

    @pytest.mark.asyncio()
    async def test_repeat_within_ttl_fetches_once(
        self, service: PriceService, stub_fetcher: StubFetcher
    ) -> None:
        first = await service.get_price(Metal.SILVER)
        second = await service.get_price(Metal.SILVER)

        assert first == second
        assert stub_fetcher.quote_calls == 1
        assert stub_fetcher.rate_calls == 1

    @pytest.mark.asyncio()
    async def test_concurrent_requests_fetch_once(
        self, service: PriceService, stub_fetcher: StubFetcher
    ) -> None:
        stub_fetcher.delay = 0.05

        responses = await asyncio.gather(
            *(service.get_price_response(Metal.SILVER) for _ in range(10))
        )

        assert stub_fetcher.quote_calls == 1
        assert {r.price_per_gram for r in responses} == {Decimal("91.11")}

    @pytest.mark.asyncio()
    async def test_refetch_after_ttl(
        self, service: PriceService, stub_fetcher: StubFetcher, clock: MutableClock
    ) -> None:
        await service.get_price(Metal.SILVER)
        clock.advance(seconds=61)
        await service.get_price(Metal.SILVER)
        assert stub_fetcher.quote_calls == 2

    @pytest.mark.asyncio()
    async def test_metals_cached_separately(
        self, service: PriceService, stub_fetcher: StubFetcher
    ) -> None:
        silver = await service.get_price(Metal.SILVER)
        gold = await service.get_price(Metal.GOLD)
        assert silver.metal == Metal.SILVER
        assert gold.metal == Metal.GOLD
        assert stub_fetcher.quote_calls == 2

    @pytest.mark.asyncio()
    async def test_upstream_failure_not_cached(
        self, service: PriceService, stub_fetcher: StubFetcher
    ) -> None:
        stub_fetcher.quote_error = UpstreamUnavailableError(
            "No plausible silver quote available.", instrument="silver", source="rate_fetcher"
        )
        with pytest.raises(UpstreamUnavailableError):
            await service.get_price(Metal.SILVER)

        stub_fetcher.quote_error = None
        price = await service.get_price(Metal.SILVER)
        assert price.price_per_gram == Decimal("91.11")
        assert stub_fetcher.quote_calls == 2

    @pytest.mark.asyncio()
    async def test_implausible_input_rejected(
        self, service: PriceService, stub_fetcher: StubFetcher
    ) -> None:
        stub_fetcher.quotes[Metal.SILVER] = Decimal("500.00")
        with pytest.raises(InvalidInputError):
            await service.get_price(Metal.SILVER)


class TestChange24h:
    """Tests for the 24h change fields."""

    @pytest.mark.asyncio()
    async def test_change_against_previous_close(self, db: Database, service: PriceService) -> None:
        await PriceRepository(db).save_daily_price(_close(datetime.date(2025, 1, 14), "90.60"))

        response = await service.get_price_response(Metal.SILVER)

        assert response.change_24h == Decimal("0.51")
        assert response.change_percent_24h == Decimal("0.56")

    @pytest.mark.asyncio()
    async def test_no_previous_close_is_zero(self, service: PriceService) -> None:
        response = await service.get_price_response(Metal.SILVER)
        assert response.change_24h == Decimal("0")
        assert response.change_percent_24h == Decimal("0")

    @pytest.mark.asyncio()
    async def test_todays_close_ignored(self, db: Database, service: PriceService) -> None:
        await PriceRepository(db).save_daily_price(_close(datetime.date(2025, 1, 15), "80.00"))
        response = await service.get_price_response(Metal.SILVER)
        assert response.change_24h == Decimal("0")


class TestExtremes:
    """Tests for today's extremes in the enriched response."""

    @pytest.mark.asyncio()
    async def test_first_request_sets_open_high_low(self, service: PriceService) -> None:
        response = await service.get_price_response(Metal.SILVER)

        assert response.today_open == Decimal("91.11")
        assert response.today_high == Decimal("91.11")
        assert response.today_low == Decimal("91.11")
        assert response.high_24h == response.low_24h == Decimal("91.11")

    @pytest.mark.asyncio()
    async def test_new_price_extends_high(
        self, service: PriceService, stub_fetcher: StubFetcher, clock: MutableClock
    ) -> None:
        first = await service.get_price_response(Metal.SILVER)
        stub_fetcher.quotes[Metal.SILVER] = Decimal("31.00")
        clock.advance(seconds=61)

        second = await service.get_price_response(Metal.SILVER)

        assert second.price_per_gram > first.price_per_gram
        assert second.today_high == second.price_per_gram
        assert second.today_low == Decimal("91.11")
        assert second.today_open == Decimal("91.11")
        assert second.today_high_time == clock.now

    @pytest.mark.asyncio()
    async def test_storage_failure_degrades(
        self, stub_fetcher: StubFetcher, clock: MutableClock
    ) -> None:
        """With the store down the price is still served, without change or extremes."""
        database = Database(db_path=":memory:")  # never connected
        service = _build_service(database, stub_fetcher, clock)

        response = await service.get_price_response(Metal.SILVER)

        assert response.price_per_gram == Decimal("91.11")
        assert response.change_24h == Decimal("0")
        assert response.today_high is None
        assert response.today_open is None
        assert response.high_24h == response.low_24h == Decimal("91.11")


class TestGoldPurities:
    """Gold responses include per-karat per-gram prices."""

    @pytest.mark.asyncio()
    async def test_gold_has_purities(self, service: PriceService) -> None:
        response = await service.get_price_response(Metal.GOLD)
        assert response.purities is not None
        assert set(response.purities) == {"24k", "22k", "18k", "14k"}
        assert response.purities["24k"] == response.price_per_gram
        assert response.purities["22k"] < response.purities["24k"]

    @pytest.mark.asyncio()
    async def test_silver_has_no_purities(self, service: PriceService) -> None:
        response = await service.get_price_response(Metal.SILVER)
        assert response.purities is None


class TestDailyClose:
    """Tests for save_daily_close()."""

    @pytest.mark.asyncio()
    async def test_first_save(self, db: Database, service: PriceService) -> None:
        result = await service.save_daily_close(Metal.SILVER)

        assert result.success is True
        assert result.skipped is False
        assert result.date == datetime.date(2025, 1, 15)
        stored = await PriceRepository(db).get_daily_price(Metal.SILVER, result.date)
        assert stored is not None
        assert stored.price_per_gram == Decimal("91.11")
        assert stored.benchmark_quote == Decimal("30.00")

    @pytest.mark.asyncio()
    async def test_second_save_skipped(self, service: PriceService) -> None:
        await service.save_daily_close(Metal.SILVER)
        result = await service.save_daily_close(Metal.SILVER)

        assert result.skipped is True
        assert result.message == "Price for 2025-01-15 already exists"
        assert result.price_per_gram == Decimal("91.11")

    @pytest.mark.asyncio()
    async def test_force_overwrites(
        self,
        db: Database,
        service: PriceService,
        stub_fetcher: StubFetcher,
        clock: MutableClock,
    ) -> None:
        await service.save_daily_close(Metal.SILVER)
        stub_fetcher.quotes[Metal.SILVER] = Decimal("31.00")
        clock.advance(seconds=61)

        result = await service.save_daily_close(Metal.SILVER, force=True)

        assert result.skipped is False
        stored = await PriceRepository(db).get_daily_price(Metal.SILVER, result.date)
        assert stored is not None
        assert stored.price_per_gram == result.price_per_gram
        assert stored.price_per_gram > Decimal("91.11")

    @pytest.mark.asyncio()
    async def test_storage_failure_raises(
        self, stub_fetcher: StubFetcher, clock: MutableClock
    ) -> None:
        service = _build_service(Database(db_path=":memory:"), stub_fetcher, clock)
        with pytest.raises(StorageFailureError):
            await service.save_daily_close(Metal.SILVER)

    @pytest.mark.asyncio()
    async def test_close_date_is_local(
        self, db: Database, stub_fetcher: StubFetcher, clock: MutableClock
    ) -> None:
        """19:00 UTC is already the next day in IST."""
        clock.now = datetime.datetime(2025, 1, 15, 19, 0, 0, tzinfo=datetime.UTC)
        service = _build_service(db, stub_fetcher, clock)

        result = await service.save_daily_close(Metal.SILVER)
        assert result.date == datetime.date(2025, 1, 16)


class TestHistory:
    """Tests for history()."""

    @pytest.mark.asyncio()
    async def test_history_oldest_first(self, db: Database, service: PriceService) -> None:
        repo = PriceRepository(db)
        for day in (12, 13, 14):
            await repo.save_daily_price(_close(datetime.date(2025, 1, day), f"9{day - 10}.00"))

        closes = await service.history(Metal.SILVER, days=2)
        assert [c.date.day for c in closes] == [13, 14]

    @pytest.mark.asyncio()
    async def test_history_clamps_window(self, service: PriceService) -> None:
        assert await service.history(Metal.SILVER, days=0) == []
        assert await service.history(Metal.SILVER, days=MAX_HISTORY_DAYS * 10) == []


class TestGoldSilverRatio:
    """Tests for get_gold_silver_ratio()."""

    @pytest.mark.asyncio()
    async def test_ratio_from_cached_prices(
        self, service: PriceService, stub_fetcher: StubFetcher
    ) -> None:
        result = await service.get_gold_silver_ratio()

        assert result.ratio == Decimal("88.33")
        assert result.interpretation == RatioInterpretation.SILVER_UNDERVALUED
        assert result.gold_price_per_gram == Decimal("8048.15")
        assert result.silver_price_per_gram == Decimal("91.11")
        assert result.gold_price_per_ounce_usd == Decimal("2650.00")
        assert result.exchange_rate == Decimal("84.00")

        await service.get_price(Metal.SILVER)
        assert stub_fetcher.quote_calls == 2

    @pytest.mark.asyncio()
    async def test_gold_failure_propagates(
        self, service: PriceService, stub_fetcher: StubFetcher
    ) -> None:
        stub_fetcher.quotes[Metal.GOLD] = Decimal("50.00")
        with pytest.raises(InvalidInputError):
            await service.get_gold_silver_ratio()


class TestUsdPrices:
    """Tests for get_usd_prices()."""

    @pytest.mark.asyncio()
    async def test_usd_denominations_and_reference_rates(self, service: PriceService) -> None:
        result = await service.get_usd_prices()

        assert result.silver.price_per_ounce == Decimal("30.00")
        assert result.silver.price_per_gram == Decimal("0.965")
        assert result.silver.price_per_kilogram == Decimal("964.52")
        assert result.silver.local_price_per_gram == Decimal("91.11")
        assert result.gold.price_per_gram == Decimal("85.199")
        assert result.gold_silver_ratio == Decimal("88.33")
        assert result.exchange_rates == {
            "INR": Decimal("84.00"),
            "EUR": Decimal("0.9200"),
            "GBP": Decimal("0.7900"),
        }

    @pytest.mark.asyncio()
    async def test_repeat_within_ttl_fetches_nothing_new(
        self, service: PriceService, stub_fetcher: StubFetcher
    ) -> None:
        await service.get_usd_prices()
        quote_calls, rate_calls = stub_fetcher.quote_calls, stub_fetcher.rate_calls

        await service.get_usd_prices()

        assert (stub_fetcher.quote_calls, stub_fetcher.rate_calls) == (quote_calls, rate_calls)

    @pytest.mark.asyncio()
    async def test_missing_reference_rate_is_omitted(
        self, service: PriceService, stub_fetcher: StubFetcher
    ) -> None:
        stub_fetcher.unavailable = {Currency.GBP}

        result = await service.get_usd_prices()

        assert set(result.exchange_rates) == {"INR", "EUR"}

    @pytest.mark.asyncio()
    async def test_upstream_failure_propagates(
        self, service: PriceService, stub_fetcher: StubFetcher
    ) -> None:
        stub_fetcher.quote_error = UpstreamUnavailableError(
            "No plausible silver quote available.", instrument="silver", source="rate_fetcher"
        )
        with pytest.raises(UpstreamUnavailableError):
            await service.get_usd_prices()


class TestCombinedPrices:
    """Tests for get_combined_prices()."""

    @pytest.mark.asyncio()
    async def test_both_metals_and_ratio(
        self, service: PriceService, stub_fetcher: StubFetcher
    ) -> None:
        result = await service.get_combined_prices()

        assert result.silver.price_per_gram == Decimal("91.11")
        assert result.gold.price_per_gram == Decimal("8048.15")
        assert result.gold.purities is not None
        assert result.ratio.ratio == Decimal("88.33")
        assert result.exchange_rates["INR"] == Decimal("84.00")
        assert stub_fetcher.quote_calls == 2

    @pytest.mark.asyncio()
    async def test_extremes_seeded_for_both_metals(self, service: PriceService) -> None:
        result = await service.get_combined_prices()
        assert result.silver.today_open == Decimal("91.11")
        assert result.gold.today_open == Decimal("8048.15")
