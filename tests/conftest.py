"""Shared test fixtures for the Bullion Rate test suite.

Provides realistic sample quotes, rates, and derived prices, plus a stub
fetcher with call counters and a controllable clock, so tests don't need
to inline large construction blocks or touch the network.
"""

import asyncio
import logging
import datetime
from collections.abc import AsyncGenerator, Generator
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio

from Bullion_Rate.analysis.formula import compute_derived_price
from Bullion_Rate.data.database import Database
from Bullion_Rate.models import Currency, DerivedPrice, ExchangeRate, Metal, RawQuote
from Bullion_Rate.utils.exceptions import UpstreamUnavailableError

IST = ZoneInfo("Asia/Kolkata")

# 12:00 IST on 2025-01-15
FIXED_NOW = datetime.datetime(2025, 1, 15, 6, 30, 0, tzinfo=datetime.UTC)


class MutableClock:
    """Callable clock that tests can pin and advance."""

    def __init__(self, now: datetime.datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + datetime.timedelta(**kwargs)


class StubFetcher:
    """In-memory stand-in for RateFetcher that counts upstream calls.

    ``rate`` is the USD/INR rate; ``reference_rates`` holds the other
    currencies. Set ``quote_error`` / ``rate_error`` to make the next calls
    fail, ``unavailable`` to fail one currency only, and ``delay`` to hold
    each call open so concurrent callers overlap.
    """

    def __init__(self) -> None:
        self.quotes: dict[Metal, Decimal] = {
            Metal.SILVER: Decimal("30.00"),
            Metal.GOLD: Decimal("2650.00"),
        }
        self.rate = Decimal("84.00")
        self.reference_rates: dict[Currency, Decimal] = {
            Currency.EUR: Decimal("0.9200"),
            Currency.GBP: Decimal("0.7900"),
        }
        self.unavailable: set[Currency] = set()
        self.quote_calls = 0
        self.rate_calls = 0
        self.quote_error: Exception | None = None
        self.rate_error: Exception | None = None
        self.delay = 0.0

    async def fetch_quote(self, metal: Metal) -> RawQuote:
        self.quote_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.quote_error is not None:
            raise self.quote_error
        return RawQuote(
            metal=metal,
            value=self.quotes[metal],
            captured_at=FIXED_NOW,
            provider_id="stub",
        )

    async def fetch_rate(self, base: Currency, quote: Currency) -> ExchangeRate:
        self.rate_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.rate_error is not None:
            raise self.rate_error
        if quote in self.unavailable:
            msg = f"No plausible {base}/{quote} rate available (stub-fx: down)."
            raise UpstreamUnavailableError(
                msg, instrument=f"{base}/{quote}", source="rate_fetcher"
            )
        return ExchangeRate(
            base=base,
            quote=quote,
            rate=self.reference_rates.get(quote, self.rate),
            captured_at=FIXED_NOW,
            provider_id="stub-fx",
        )


@pytest.fixture()
def clock() -> MutableClock:
    """A clock pinned to 12:00 IST on 2025-01-15."""
    return MutableClock()


@pytest.fixture()
def stub_fetcher() -> StubFetcher:
    """Stub fetcher returning silver 30.00 USD/oz, gold 2650.00, USD/INR 84.00."""
    return StubFetcher()


@pytest_asyncio.fixture()
async def db() -> AsyncGenerator[Database]:
    """Provide a connected in-memory Database for each test, with cleanup."""
    database = Database(db_path=":memory:")
    await database.connect()
    yield database
    await database.close()


@pytest.fixture()
def sample_silver_quote() -> RawQuote:
    """COMEX silver at 30.00 USD/oz."""
    return RawQuote(
        metal=Metal.SILVER,
        value=Decimal("30.00"),
        captured_at=FIXED_NOW,
        provider_id="yahoo",
    )


@pytest.fixture()
def sample_gold_quote() -> RawQuote:
    """COMEX gold at 2650.00 USD/oz."""
    return RawQuote(
        metal=Metal.GOLD,
        value=Decimal("2650.00"),
        captured_at=FIXED_NOW,
        provider_id="yahoo",
    )


@pytest.fixture()
def sample_usd_inr() -> ExchangeRate:
    """USD/INR at 84.00."""
    return ExchangeRate(
        base=Currency.USD,
        quote=Currency.INR,
        rate=Decimal("84.00"),
        captured_at=FIXED_NOW,
        provider_id="frankfurter",
    )


@pytest.fixture()
def sample_silver_price(
    sample_silver_quote: RawQuote,
    sample_usd_inr: ExchangeRate,
) -> DerivedPrice:
    """Silver at 30.00 USD/oz and 84.00 INR/USD with default markups (91.11 INR/g)."""
    return compute_derived_price(sample_silver_quote, sample_usd_inr, now=FIXED_NOW)


@pytest.fixture(autouse=True)
def _restore_root_logging() -> Generator[None]:
    """Undo configure_logging() side effects so handlers never outlive their streams."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
