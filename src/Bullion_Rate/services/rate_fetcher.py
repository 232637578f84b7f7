"""Benchmark quote and exchange-rate fetching with provider fallback.

Providers are tried in a fixed priority order. Each call gets its own
timeout, and a value is accepted only if it lies inside the plausibility
band for its instrument. Nothing is retried inline and nothing is
fabricated: when every provider fails the fetch raises
UpstreamUnavailableError and the caller decides what to show.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections.abc import Sequence
from decimal import Decimal
from typing import Final

import httpx

from Bullion_Rate.analysis.formula import QUOTE_BANDS, RATE_BANDS, in_band
from Bullion_Rate.config import Settings
from Bullion_Rate.models.enums import Currency, Metal
from Bullion_Rate.models.market_data import ExchangeRate, RawQuote
from Bullion_Rate.services.providers import (
    FrankfurterRateProvider,
    GoldApiQuoteProvider,
    MetalpriceQuoteProvider,
    OpenErApiRateProvider,
    QuoteProvider,
    RateProvider,
    YahooQuoteProvider,
    YahooRateProvider,
)
from Bullion_Rate.utils.exceptions import (
    InvalidInputError,
    ProviderError,
    UpstreamUnavailableError,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_PROVIDER_TIMEOUT: Final[float] = 8.0
FETCHER_SOURCE: Final[str] = "rate_fetcher"


class RateFetcher:
    """Walk a priority-ordered provider chain until one returns plausible data.

    Usage::

        async with httpx.AsyncClient() as client:
            fetcher = build_rate_fetcher(settings, client)
            quote = await fetcher.fetch_quote(Metal.SILVER)
            rate = await fetcher.fetch_rate(Currency.USD, Currency.INR)
    """

    def __init__(
        self,
        quote_providers: Sequence[QuoteProvider],
        rate_providers: Sequence[RateProvider],
        *,
        timeout_seconds: float = DEFAULT_PROVIDER_TIMEOUT,
    ) -> None:
        self._quote_providers = list(quote_providers)
        self._rate_providers = list(rate_providers)
        self._timeout = timeout_seconds

        logger.info(
            "RateFetcher initialized: quotes=%s rates=%s timeout=%.1fs",
            [p.provider_id for p in self._quote_providers],
            [p.provider_id for p in self._rate_providers],
            timeout_seconds,
        )

    async def fetch_quote(self, metal: Metal) -> RawQuote:
        """Return the first plausible benchmark quote for ``metal``.

        Raises:
            UpstreamUnavailableError: If every provider failed or returned an
                out-of-band value.
        """
        band = QUOTE_BANDS[metal]
        failures: list[str] = []

        for provider in self._quote_providers:
            try:
                quote = await asyncio.wait_for(provider.fetch_quote(metal), timeout=self._timeout)
            except TimeoutError:
                failures.append(f"{provider.provider_id}: timed out")
                logger.warning("%s quote from %s timed out.", metal, provider.provider_id)
                continue
            except (ProviderError, httpx.HTTPError) as exc:
                failures.append(f"{provider.provider_id}: {exc}")
                logger.warning("%s quote from %s failed: %s", metal, provider.provider_id, exc)
                continue

            if not in_band(quote.value, band):
                failures.append(f"{provider.provider_id}: {quote.value} out of band")
                logger.warning(
                    "%s quote %s from %s outside plausible range %s-%s, rejected.",
                    metal,
                    quote.value,
                    provider.provider_id,
                    band[0],
                    band[1],
                )
                continue

            logger.info("%s quote: %s USD/oz from %s", metal, quote.value, provider.provider_id)
            return quote

        msg = f"No plausible {metal} quote available ({'; '.join(failures) or 'no providers'})."
        raise UpstreamUnavailableError(msg, instrument=metal, source=FETCHER_SOURCE)

    async def fetch_rate(self, base: Currency, quote: Currency) -> ExchangeRate:
        """Return the first plausible ``base``/``quote`` exchange rate.

        An identity pair (e.g. USD/USD) resolves to 1 without any network call.
        Any other pair must be USD to a currency with a plausibility band, so
        an unchecked rate is never returned.

        Raises:
            InvalidInputError: If the pair has no plausibility band.
            UpstreamUnavailableError: If every provider failed or returned an
                out-of-band value.
        """
        pair = f"{base}/{quote}"
        if base == quote:
            return ExchangeRate(
                base=base,
                quote=quote,
                rate=Decimal("1"),
                captured_at=datetime.datetime.now(datetime.UTC),
                provider_id="identity",
            )

        band = RATE_BANDS.get(quote) if base == Currency.USD else None
        if band is None:
            msg = f"No plausibility band for {pair}; refusing an unchecked rate."
            raise InvalidInputError(msg, instrument=pair, source=FETCHER_SOURCE)
        failures: list[str] = []

        for provider in self._rate_providers:
            try:
                rate = await asyncio.wait_for(
                    provider.fetch_rate(base, quote), timeout=self._timeout
                )
            except TimeoutError:
                failures.append(f"{provider.provider_id}: timed out")
                logger.warning("%s rate from %s timed out.", pair, provider.provider_id)
                continue
            except (ProviderError, httpx.HTTPError) as exc:
                failures.append(f"{provider.provider_id}: {exc}")
                logger.warning("%s rate from %s failed: %s", pair, provider.provider_id, exc)
                continue

            if not in_band(rate.rate, band):
                failures.append(f"{provider.provider_id}: {rate.rate} out of band")
                logger.warning(
                    "%s rate %s from %s outside plausible range %s-%s, rejected.",
                    pair,
                    rate.rate,
                    provider.provider_id,
                    band[0],
                    band[1],
                )
                continue

            logger.info("%s rate: %s from %s", pair, rate.rate, provider.provider_id)
            return rate

        msg = f"No plausible {pair} rate available ({'; '.join(failures) or 'no providers'})."
        raise UpstreamUnavailableError(msg, instrument=pair, source=FETCHER_SOURCE)


def build_rate_fetcher(settings: Settings, client: httpx.AsyncClient) -> RateFetcher:
    """Assemble the default provider chain from settings.

    Keyed providers are skipped when their API key is not configured.
    """
    quote_providers: list[QuoteProvider] = [YahooQuoteProvider(client, settings.yahoo_chart_url)]
    if settings.metalprice_api_key:
        quote_providers.append(
            MetalpriceQuoteProvider(
                client, settings.metalprice_api_url, settings.metalprice_api_key
            )
        )
    if settings.goldapi_key:
        quote_providers.append(
            GoldApiQuoteProvider(client, settings.goldapi_url, settings.goldapi_key)
        )

    rate_providers: list[RateProvider] = [
        FrankfurterRateProvider(client, settings.frankfurter_url),
        OpenErApiRateProvider(client, settings.open_er_api_url),
        YahooRateProvider(client, settings.yahoo_chart_url),
    ]

    return RateFetcher(
        quote_providers,
        rate_providers,
        timeout_seconds=settings.provider_timeout_seconds,
    )
