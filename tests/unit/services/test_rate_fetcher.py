"""Tests for RateFetcher: provider fallback, plausibility bands, and timeouts.

Providers are in-memory fakes, except where the real HTTP providers run
against respx routes; HTTP parsing itself is covered in test_providers.py.

Covers:
- First plausible provider wins; later providers are not called
- Failing, timing-out, and out-of-band providers fall through to the next
- All providers failing raises UpstreamUnavailableError naming each failure
- Identity pair returns rate 1 without calling any provider
- Pairs with no plausibility band are refused before any provider call
- Malformed provider payloads (respx) fall through to the next provider
- build_rate_fetcher() includes keyed providers only when configured
"""

from __future__ import annotations

import asyncio
import datetime
from decimal import Decimal

import httpx
import pytest
import respx

from Bullion_Rate.config import Settings
from Bullion_Rate.models import Currency, ExchangeRate, Metal, RawQuote
from Bullion_Rate.services.rate_fetcher import RateFetcher, build_rate_fetcher
from Bullion_Rate.utils.exceptions import (
    InvalidInputError,
    ProviderError,
    UpstreamUnavailableError,
)

NOW = datetime.datetime(2025, 1, 15, 6, 30, 0, tzinfo=datetime.UTC)


class FakeQuoteProvider:
    """Returns a fixed value, raises, or hangs."""

    def __init__(
        self,
        provider_id: str,
        value: str | None = None,
        *,
        error: Exception | None = None,
        hang: bool = False,
    ) -> None:
        self.provider_id = provider_id
        self._value = value
        self._error = error
        self._hang = hang
        self.calls = 0

    async def fetch_quote(self, metal: Metal) -> RawQuote:
        self.calls += 1
        if self._hang:
            await asyncio.sleep(10)
        if self._error is not None:
            raise self._error
        assert self._value is not None
        return RawQuote(
            metal=metal,
            value=Decimal(self._value),
            captured_at=NOW,
            provider_id=self.provider_id,
        )


class FakeRateProvider:
    """Returns a fixed rate or raises."""

    def __init__(
        self,
        provider_id: str,
        value: str | None = None,
        *,
        error: Exception | None = None,
    ) -> None:
        self.provider_id = provider_id
        self._value = value
        self._error = error
        self.calls = 0

    async def fetch_rate(self, base: Currency, quote: Currency) -> ExchangeRate:
        self.calls += 1
        if self._error is not None:
            raise self._error
        assert self._value is not None
        return ExchangeRate(
            base=base,
            quote=quote,
            rate=Decimal(self._value),
            captured_at=NOW,
            provider_id=self.provider_id,
        )


def _provider_error(source: str) -> ProviderError:
    return ProviderError(f"{source} returned HTTP 500.", instrument="silver", source=source)


class TestFetchQuote:
    """Tests for the quote provider chain."""

    @pytest.mark.asyncio()
    async def test_first_provider_wins(self) -> None:
        first = FakeQuoteProvider("yahoo", "30.00")
        second = FakeQuoteProvider("metalpriceapi", "30.10")
        fetcher = RateFetcher([first, second], [])

        quote = await fetcher.fetch_quote(Metal.SILVER)

        assert quote.value == Decimal("30.00")
        assert quote.provider_id == "yahoo"
        assert second.calls == 0

    @pytest.mark.asyncio()
    async def test_falls_back_on_provider_error(self) -> None:
        fetcher = RateFetcher(
            [
                FakeQuoteProvider("yahoo", error=_provider_error("yahoo")),
                FakeQuoteProvider("metalpriceapi", "30.10"),
            ],
            [],
        )
        quote = await fetcher.fetch_quote(Metal.SILVER)
        assert quote.provider_id == "metalpriceapi"

    @pytest.mark.asyncio()
    async def test_falls_back_on_transport_error(self) -> None:
        fetcher = RateFetcher(
            [
                FakeQuoteProvider("yahoo", error=httpx.ConnectError("refused")),
                FakeQuoteProvider("goldapi", "30.05"),
            ],
            [],
        )
        quote = await fetcher.fetch_quote(Metal.SILVER)
        assert quote.provider_id == "goldapi"

    @pytest.mark.asyncio()
    async def test_falls_back_on_timeout(self) -> None:
        fetcher = RateFetcher(
            [
                FakeQuoteProvider("yahoo", "30.00", hang=True),
                FakeQuoteProvider("metalpriceapi", "30.10"),
            ],
            [],
            timeout_seconds=0.05,
        )
        quote = await fetcher.fetch_quote(Metal.SILVER)
        assert quote.provider_id == "metalpriceapi"

    @pytest.mark.asyncio()
    async def test_out_of_band_value_rejected(self) -> None:
        """A provider returning a gold-sized number for silver is skipped."""
        fetcher = RateFetcher(
            [
                FakeQuoteProvider("yahoo", "2650.00"),
                FakeQuoteProvider("metalpriceapi", "30.10"),
            ],
            [],
        )
        quote = await fetcher.fetch_quote(Metal.SILVER)
        assert quote.value == Decimal("30.10")

    @pytest.mark.asyncio()
    async def test_gold_band(self) -> None:
        fetcher = RateFetcher([FakeQuoteProvider("yahoo", "2650.00")], [])
        quote = await fetcher.fetch_quote(Metal.GOLD)
        assert quote.value == Decimal("2650.00")

    @pytest.mark.asyncio()
    async def test_all_fail_raises(self) -> None:
        fetcher = RateFetcher(
            [
                FakeQuoteProvider("yahoo", error=_provider_error("yahoo")),
                FakeQuoteProvider("metalpriceapi", "500.00"),
            ],
            [],
        )
        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await fetcher.fetch_quote(Metal.SILVER)

        message = str(exc_info.value)
        assert "yahoo" in message
        assert "metalpriceapi: 500.00 out of band" in message
        assert exc_info.value.source == "rate_fetcher"

    @pytest.mark.asyncio()
    async def test_no_providers_raises(self) -> None:
        fetcher = RateFetcher([], [])
        with pytest.raises(UpstreamUnavailableError, match="no providers"):
            await fetcher.fetch_quote(Metal.SILVER)


class TestFetchRate:
    """Tests for the exchange-rate provider chain."""

    @pytest.mark.asyncio()
    async def test_first_provider_wins(self) -> None:
        fetcher = RateFetcher([], [FakeRateProvider("frankfurter", "84.00")])
        rate = await fetcher.fetch_rate(Currency.USD, Currency.INR)
        assert rate.rate == Decimal("84.00")
        assert rate.pair == "USD/INR"

    @pytest.mark.asyncio()
    async def test_falls_back_and_rejects_out_of_band(self) -> None:
        fetcher = RateFetcher(
            [],
            [
                FakeRateProvider("frankfurter", error=_provider_error("frankfurter")),
                FakeRateProvider("open-er-api", "8.40"),
                FakeRateProvider("yahoo", "83.95"),
            ],
        )
        rate = await fetcher.fetch_rate(Currency.USD, Currency.INR)
        assert rate.provider_id == "yahoo"

    @pytest.mark.asyncio()
    async def test_identity_pair(self) -> None:
        provider = FakeRateProvider("frankfurter", "84.00")
        fetcher = RateFetcher([], [provider])

        rate = await fetcher.fetch_rate(Currency.USD, Currency.USD)

        assert rate.rate == Decimal("1")
        assert rate.provider_id == "identity"
        assert provider.calls == 0

    @pytest.mark.asyncio()
    async def test_all_fail_raises(self) -> None:
        fetcher = RateFetcher(
            [],
            [FakeRateProvider("frankfurter", error=_provider_error("frankfurter"))],
        )
        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await fetcher.fetch_rate(Currency.USD, Currency.INR)
        assert exc_info.value.instrument == "USD/INR"

    @pytest.mark.asyncio()
    async def test_pair_without_band_rejected_before_providers(self) -> None:
        """A cross rate such as INR/CNY has no plausibility check, so it is refused."""
        provider = FakeRateProvider("frankfurter", "0.086")
        fetcher = RateFetcher([], [provider])

        with pytest.raises(InvalidInputError, match="No plausibility band for INR/CNY"):
            await fetcher.fetch_rate(Currency.INR, Currency.CNY)

        assert provider.calls == 0


class TestMalformedPayloadFallback:
    """A provider answering with an unexpected JSON shape falls through the chain."""

    @pytest.mark.asyncio()
    async def test_rates_list_falls_back_to_next_rate_provider(self) -> None:
        settings = Settings(METALPRICE_API_KEY="", GOLDAPI_KEY="")
        async with httpx.AsyncClient() as client:
            fetcher = build_rate_fetcher(settings, client)
            with respx.mock:
                respx.get(settings.frankfurter_url).mock(
                    return_value=httpx.Response(200, json={"rates": ["oops"]})
                )
                respx.get(f"{settings.open_er_api_url.rstrip('/')}/USD").mock(
                    return_value=httpx.Response(
                        200, json={"result": "success", "rates": {"INR": 84.0}}
                    )
                )
                rate = await fetcher.fetch_rate(Currency.USD, Currency.INR)

        assert rate.rate == Decimal("84.0")
        assert rate.provider_id == "open-er-api"

    @pytest.mark.asyncio()
    async def test_rates_string_falls_back_to_next_quote_provider(self) -> None:
        settings = Settings(METALPRICE_API_KEY="mp-key", GOLDAPI_KEY="ga-key")
        async with httpx.AsyncClient() as client:
            fetcher = build_rate_fetcher(settings, client)
            with respx.mock:
                respx.get(f"{settings.yahoo_chart_url.rstrip('/')}/SI=F").mock(
                    return_value=httpx.Response(503)
                )
                respx.get(settings.metalprice_api_url).mock(
                    return_value=httpx.Response(200, json={"success": True, "rates": "USD"})
                )
                respx.get(f"{settings.goldapi_url.rstrip('/')}/XAG/USD").mock(
                    return_value=httpx.Response(200, json={"price": 30.4})
                )
                quote = await fetcher.fetch_quote(Metal.SILVER)

        assert quote.value == Decimal("30.4")
        assert quote.provider_id == "goldapi"


class TestBuildRateFetcher:
    """Tests for assembling the default chain from settings."""

    @pytest.mark.asyncio()
    async def test_keyless_chain(self) -> None:
        settings = Settings(METALPRICE_API_KEY="", GOLDAPI_KEY="")
        async with httpx.AsyncClient() as client:
            fetcher = build_rate_fetcher(settings, client)
        assert [p.provider_id for p in fetcher._quote_providers] == ["yahoo"]
        assert [p.provider_id for p in fetcher._rate_providers] == [
            "frankfurter",
            "open-er-api",
            "yahoo",
        ]

    @pytest.mark.asyncio()
    async def test_keyed_providers_added(self) -> None:
        settings = Settings(METALPRICE_API_KEY="mp-key", GOLDAPI_KEY="ga-key")
        async with httpx.AsyncClient() as client:
            fetcher = build_rate_fetcher(settings, client)
        assert [p.provider_id for p in fetcher._quote_providers] == [
            "yahoo",
            "metalpriceapi",
            "goldapi",
        ]
