"""Price pipeline: cached derived price, 24h change, and intraday extremes.

Request path::

    cache hit  -> cached DerivedPrice
    cache miss -> RateFetcher (quote + rate) -> formula -> cache -> DerivedPrice
    then       -> 24h change from stored closes
               -> DailyExtremesTracker.update
               -> PriceResponse

Upstream and formula failures propagate immediately so the HTTP layer can
answer 503. Storage failures in the change lookup or extremes tracker are
logged and the price is served without them.

The gold-silver ratio, USD and combined views are read from the same cached
derived prices, so they never trigger extra quote fetches within one TTL.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from decimal import Decimal
from typing import Final, Protocol
from zoneinfo import ZoneInfo

from Bullion_Rate.analysis.formula import (
    DEFAULT_MARKUPS,
    MarkupFactors,
    compute_derived_price,
    derive_purity_price,
    round_cents,
)
from Bullion_Rate.analysis.ratio import (
    gold_silver_ratio,
    interpret_ratio,
    usd_spot_denominations,
)
from Bullion_Rate.data.repository import PriceRepository
from Bullion_Rate.models.api import (
    CombinedPricesResponse,
    DailyCloseResponse,
    GoldSilverRatioResponse,
    PriceResponse,
    UsdPricesResponse,
    UsdSpotPrice,
)
from Bullion_Rate.models.enums import Currency, GoldPurity, Metal
from Bullion_Rate.models.extremes import DailyExtremes, StoredDailyPrice
from Bullion_Rate.models.market_data import DerivedPrice, ExchangeRate, RawQuote
from Bullion_Rate.services.cache import (
    DEFAULT_PRICE_TTL,
    KeyValueStore,
    price_cache_key,
    rate_cache_key,
)
from Bullion_Rate.services.extremes import DailyExtremesTracker
from Bullion_Rate.utils.clock import Clock, utc_now
from Bullion_Rate.utils.exceptions import PriceEngineError, StorageFailureError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_HISTORY_DAYS: Final[int] = 30
MAX_HISTORY_DAYS: Final[int] = 365

# Karat grades published alongside the 24K gold price
PUBLISHED_GOLD_PURITIES: Final[tuple[GoldPurity, ...]] = (
    GoldPurity.K24,
    GoldPurity.K22,
    GoldPurity.K18,
    GoldPurity.K14,
)

# Quoted per USD next to the USD and combined views
REFERENCE_CURRENCIES: Final[tuple[Currency, ...]] = (Currency.INR, Currency.EUR, Currency.GBP)

_HUNDRED: Final[Decimal] = Decimal("100")
_ZERO: Final[Decimal] = Decimal("0")


class MarketDataFetcher(Protocol):
    """What the pipeline needs from a RateFetcher."""

    async def fetch_quote(self, metal: Metal) -> RawQuote: ...

    async def fetch_rate(self, base: Currency, quote: Currency) -> ExchangeRate: ...


class PriceService:
    """Compute, cache, and enrich derived retail prices.

    Usage::

        service = PriceService(
            fetcher=build_rate_fetcher(settings, client),
            cache=cache,
            repository=PriceRepository(db),
            tracker=DailyExtremesTracker(PriceRepository(db), timezone=tz),
            currency=Currency.INR,
        )
        response = await service.get_price_response(Metal.SILVER)
    """

    def __init__(
        self,
        *,
        fetcher: MarketDataFetcher,
        cache: KeyValueStore,
        repository: PriceRepository,
        tracker: DailyExtremesTracker,
        currency: Currency = Currency.INR,
        markups: MarkupFactors = DEFAULT_MARKUPS,
        ttl_seconds: int = DEFAULT_PRICE_TTL,
        clock: Clock = utc_now,
    ) -> None:
        self._fetcher = fetcher
        self._cache = cache
        self._repository = repository
        self._tracker = tracker
        self._currency = currency
        self._markups = markups
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    @property
    def timezone(self) -> ZoneInfo:
        return self._tracker.timezone

    # ------------------------------------------------------------------
    # Derived price (cached)
    # ------------------------------------------------------------------

    async def get_price(self, metal: Metal) -> DerivedPrice:
        """Return the derived price for ``metal``, computing it on a cache miss.

        Raises:
            UpstreamUnavailableError: If no provider returned plausible data.
            InvalidInputError: If the formula rejected the fetched inputs.
        """
        key = price_cache_key(metal, self._currency)

        async def compute() -> str:
            price = await self._compute_price(metal)
            return price.model_dump_json()

        payload = await self._cache.get_or_compute(key, self._ttl_seconds, compute)
        return DerivedPrice.model_validate_json(payload)

    async def _compute_price(self, metal: Metal) -> DerivedPrice:
        """Fetch quote and rate concurrently and run the formula."""
        quote, rate = await asyncio.gather(
            self._fetcher.fetch_quote(metal),
            self._fetcher.fetch_rate(Currency.USD, self._currency),
        )
        price = compute_derived_price(quote, rate, self._markups, now=self._clock())
        logger.info(
            "Computed %s price: %s %s/g (source=%s)",
            metal,
            price.price_per_gram,
            price.currency,
            price.source,
        )
        return price

    # ------------------------------------------------------------------
    # Enriched response
    # ------------------------------------------------------------------

    async def get_price_response(self, metal: Metal) -> PriceResponse:
        """Return the derived price enriched with 24h change and today's extremes."""
        price = await self.get_price(metal)
        now = self._clock()

        change, change_percent = await self._change_24h(price, now)
        extremes = await self._update_extremes(price, now)

        if extremes is not None:
            high_24h, low_24h = extremes.high, extremes.low
        else:
            high_24h = low_24h = price.price_per_gram

        purities: dict[str, Decimal] | None = None
        if metal == Metal.GOLD:
            purities = {
                grade.value: derive_purity_price(price, grade).price_per_gram
                for grade in PUBLISHED_GOLD_PURITIES
            }

        return PriceResponse(
            metal=metal,
            price_per_gram=price.price_per_gram,
            price_per_ten_grams=price.price_per_ten_grams,
            price_per_kilogram=price.price_per_kilogram,
            price_per_traditional_unit=price.price_per_traditional_unit,
            currency=price.currency,
            timestamp=price.computed_at,
            change_24h=change,
            change_percent_24h=change_percent,
            high_24h=high_24h,
            low_24h=low_24h,
            source=price.source,
            today_high=extremes.high if extremes else None,
            today_high_time=extremes.high_at if extremes else None,
            today_low=extremes.low if extremes else None,
            today_low_time=extremes.low_at if extremes else None,
            today_open=extremes.open_price if extremes else None,
            benchmark_quote=price.source_quote.value,
            exchange_rate=price.source_rate.rate,
            purities=purities,
        )

    async def _update_extremes(
        self,
        price: DerivedPrice,
        now: datetime.datetime,
    ) -> DailyExtremes | None:
        """Fold the price into today's extremes; None if the store is unavailable."""
        try:
            return await self._tracker.update(
                price.metal, price.currency, price.price_per_gram, now=now
            )
        except StorageFailureError as exc:
            logger.warning("Serving %s price without extremes: %s", price.metal, exc)
            return None

    async def _change_24h(
        self,
        price: DerivedPrice,
        now: datetime.datetime,
    ) -> tuple[Decimal, Decimal]:
        """Change against the most recent stored close before today.

        Returns zero change when there is no earlier close or the store is
        unavailable.
        """
        today = self._tracker.local_date(now)
        try:
            previous = await self._repository.get_latest_close_before(price.metal, today)
        except StorageFailureError as exc:
            logger.warning("Serving %s price without 24h change: %s", price.metal, exc)
            return _ZERO, _ZERO

        if previous is None or previous.price_per_gram <= 0:
            return _ZERO, _ZERO

        change = round_cents(price.price_per_gram - previous.price_per_gram)
        change_percent = round_cents(
            (price.price_per_gram - previous.price_per_gram) / previous.price_per_gram * _HUNDRED
        )
        return change, change_percent

    # ------------------------------------------------------------------
    # Daily closes
    # ------------------------------------------------------------------

    async def save_daily_close(self, metal: Metal, *, force: bool = False) -> DailyCloseResponse:
        """Store today's close for ``metal`` unless it is already stored.

        Raises:
            UpstreamUnavailableError: If the price could not be computed.
            StorageFailureError: If the close could not be read or written.
        """
        now = self._clock()
        today = self._tracker.local_date(now)

        existing = await self._repository.get_daily_price(metal, today)
        if existing is not None and not force:
            logger.info("%s close for %s already stored, skipping.", metal, today)
            return DailyCloseResponse(
                success=True,
                skipped=True,
                message=f"Price for {today} already exists",
                date=today,
                price_per_gram=existing.price_per_gram,
            )

        price = await self.get_price(metal)
        await self._repository.save_daily_price(
            StoredDailyPrice(
                date=today,
                metal=metal,
                price_per_gram=price.price_per_gram,
                price_per_kilogram=price.price_per_kilogram,
                benchmark_quote=price.source_quote.value,
                exchange_rate=price.source_rate.rate,
                source=price.source,
                timestamp=now,
            )
        )
        return DailyCloseResponse(
            success=True,
            skipped=False,
            message=f"Saved {metal} price for {today}",
            date=today,
            price_per_gram=price.price_per_gram,
        )

    # ------------------------------------------------------------------
    # Cross-metal and USD views
    # ------------------------------------------------------------------

    async def get_rate(self, quote: Currency) -> ExchangeRate:
        """Return the cached USD/``quote`` rate, fetching it on a miss."""
        key = rate_cache_key(Currency.USD, quote)

        async def compute() -> str:
            rate = await self._fetcher.fetch_rate(Currency.USD, quote)
            return rate.model_dump_json()

        payload = await self._cache.get_or_compute(key, self._ttl_seconds, compute)
        return ExchangeRate.model_validate_json(payload)

    async def get_gold_silver_ratio(self) -> GoldSilverRatioResponse:
        """Return the gold-silver ratio read from both cached derived prices.

        Raises:
            UpstreamUnavailableError: If either metal could not be priced.
            InvalidInputError: If either quote was rejected.
        """
        gold, silver = await asyncio.gather(
            self.get_price(Metal.GOLD),
            self.get_price(Metal.SILVER),
        )
        ratio = gold_silver_ratio(gold.source_quote, silver.source_quote)
        reading = interpret_ratio(ratio)
        logger.info("Gold-silver ratio %s (%s)", ratio, reading.interpretation)

        return GoldSilverRatioResponse(
            ratio=ratio,
            interpretation=reading.interpretation,
            interpretation_text=reading.summary,
            historical_context=reading.historical_context,
            investment_hint=reading.investment_hint,
            gold_price_per_gram=gold.price_per_gram,
            silver_price_per_gram=silver.price_per_gram,
            gold_price_per_ounce_usd=round_cents(gold.source_quote.value),
            silver_price_per_ounce_usd=round_cents(silver.source_quote.value),
            currency=silver.currency,
            exchange_rate=silver.source_rate.rate,
            timestamp=self._clock(),
        )

    async def get_usd_prices(self) -> UsdPricesResponse:
        """Return both metals in plain USD with reference exchange rates.

        Raises:
            UpstreamUnavailableError: If either metal could not be priced.
            InvalidInputError: If either quote was rejected.
        """
        silver, gold = await asyncio.gather(
            self.get_price(Metal.SILVER),
            self.get_price(Metal.GOLD),
        )
        exchange_rates = await self._reference_rates(silver.currency, silver.source_rate.rate)

        return UsdPricesResponse(
            silver=self._usd_spot(silver),
            gold=self._usd_spot(gold),
            gold_silver_ratio=gold_silver_ratio(gold.source_quote, silver.source_quote),
            exchange_rates=exchange_rates,
            timestamp=self._clock(),
        )

    async def get_combined_prices(self) -> CombinedPricesResponse:
        """Return the enriched silver and gold responses with their ratio.

        Raises:
            UpstreamUnavailableError: If either metal could not be priced.
            InvalidInputError: If either quote was rejected.
        """
        silver, gold, ratio = await asyncio.gather(
            self.get_price_response(Metal.SILVER),
            self.get_price_response(Metal.GOLD),
            self.get_gold_silver_ratio(),
        )
        exchange_rates = await self._reference_rates(silver.currency, silver.exchange_rate)

        return CombinedPricesResponse(
            silver=silver,
            gold=gold,
            ratio=ratio,
            exchange_rates=exchange_rates,
            timestamp=self._clock(),
        )

    def _usd_spot(self, price: DerivedPrice) -> UsdSpotPrice:
        return UsdSpotPrice(
            metal=price.metal,
            local_price_per_gram=price.price_per_gram,
            local_currency=price.currency,
            source=price.source_quote.provider_id,
            **usd_spot_denominations(price.source_quote),
        )

    async def _reference_rates(
        self,
        currency: Currency,
        target_rate: Decimal,
    ) -> dict[str, Decimal]:
        """Units per USD for the target currency plus REFERENCE_CURRENCIES.

        ``target_rate`` is the rate the quoted price was computed with, so the
        two always agree. A reference currency that cannot be fetched is left
        out rather than failing the response.
        """
        rates: dict[str, Decimal] = {}
        if currency != Currency.USD:
            rates[currency.value] = target_rate

        extra = [c for c in REFERENCE_CURRENCIES if c.value not in rates]
        results = await asyncio.gather(
            *(self.get_rate(currency) for currency in extra),
            return_exceptions=True,
        )
        for currency, result in zip(extra, results, strict=True):
            if isinstance(result, PriceEngineError):
                logger.warning("Omitting USD/%s reference rate: %s", currency, result)
                continue
            if isinstance(result, BaseException):
                raise result
            rates[currency.value] = result.rate
        return rates

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def history(
        self,
        metal: Metal,
        *,
        days: int = DEFAULT_HISTORY_DAYS,
    ) -> list[StoredDailyPrice]:
        """Return up to ``days`` stored closes, oldest first."""
        limit = max(1, min(days, MAX_HISTORY_DAYS))
        return await self._repository.list_daily_prices(metal, limit=limit)
