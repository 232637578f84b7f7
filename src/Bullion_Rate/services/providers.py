"""Upstream quote and exchange-rate providers.

Each provider performs exactly one HTTP call per fetch and either returns a
RawQuote / ExchangeRate or raises ProviderError. Providers do not retry,
time out, or range-check: the RateFetcher owns those policies.

Quote providers (USD per troy ounce):
    - Yahoo Finance chart API (COMEX front-month futures SI=F / GC=F)
    - MetalpriceAPI (needs an API key)
    - GoldAPI.io (needs an API key)

Exchange-rate providers:
    - Frankfurter (ECB reference rates)
    - open.er-api.com
    - Yahoo Finance chart API (``INR=X`` style symbols)
"""

from __future__ import annotations

import datetime
import logging
from typing import Any, Final, Protocol

import httpx

from Bullion_Rate.models.enums import Currency, Metal
from Bullion_Rate.models.market_data import ExchangeRate, RawQuote
from Bullion_Rate.services._helpers import BROWSER_USER_AGENT, get_json, require_decimal
from Bullion_Rate.utils.exceptions import ProviderError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Provider identifiers
# ---------------------------------------------------------------------------

YAHOO_SOURCE: Final[str] = "yahoo"
METALPRICE_SOURCE: Final[str] = "metalpriceapi"
GOLDAPI_SOURCE: Final[str] = "goldapi"
FRANKFURTER_SOURCE: Final[str] = "frankfurter"
OPEN_ER_API_SOURCE: Final[str] = "open-er-api"

# Yahoo futures symbols per metal
YAHOO_METAL_SYMBOLS: Final[dict[Metal, str]] = {
    Metal.SILVER: "SI=F",
    Metal.GOLD: "GC=F",
}

# ISO 4217 metal codes used by MetalpriceAPI and GoldAPI
ISO_METAL_CODES: Final[dict[Metal, str]] = {
    Metal.SILVER: "XAG",
    Metal.GOLD: "XAU",
}


class QuoteProvider(Protocol):
    """Source of benchmark quotes in USD per troy ounce."""

    provider_id: str

    async def fetch_quote(self, metal: Metal) -> RawQuote: ...


class RateProvider(Protocol):
    """Source of currency exchange rates."""

    provider_id: str

    async def fetch_rate(self, base: Currency, quote: Currency) -> ExchangeRate: ...


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def _yahoo_market_price(data: Any, *, instrument: str) -> object:
    """Extract ``chart.result[0].meta.regularMarketPrice`` from a Yahoo payload."""
    try:
        result = data["chart"]["result"]
        return result[0]["meta"]["regularMarketPrice"]
    except (KeyError, IndexError, TypeError) as exc:
        msg = "yahoo chart payload missing regularMarketPrice."
        raise ProviderError(msg, instrument=instrument, source=YAHOO_SOURCE) from exc


def _rates_entry(data: Any, code: str, *, instrument: str, source: str) -> object:
    """Return ``data["rates"][code]``; a missing or non-mapping ``rates`` is a ProviderError."""
    rates = data.get("rates") if isinstance(data, dict) else None
    if not isinstance(rates, dict):
        msg = f"{source} payload has no rates mapping: {rates!r}"
        raise ProviderError(msg, instrument=instrument, source=source)
    return rates.get(code)


# ---------------------------------------------------------------------------
# Quote providers
# ---------------------------------------------------------------------------


class YahooQuoteProvider:
    """COMEX futures price from the Yahoo Finance chart endpoint."""

    provider_id = YAHOO_SOURCE

    def __init__(self, client: httpx.AsyncClient, base_url: str) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")

    async def fetch_quote(self, metal: Metal) -> RawQuote:
        symbol = YAHOO_METAL_SYMBOLS[metal]
        data = await get_json(
            self._client,
            f"{self._base_url}/{symbol}",
            instrument=metal,
            source=self.provider_id,
            params={"interval": "1d", "range": "1d"},
            headers={"User-Agent": BROWSER_USER_AGENT},
        )
        raw_price = _yahoo_market_price(data, instrument=metal)
        value = require_decimal(
            raw_price, instrument=metal, source=self.provider_id, field="regularMarketPrice"
        )
        return RawQuote(metal=metal, value=value, captured_at=_now(), provider_id=self.provider_id)


class MetalpriceQuoteProvider:
    """Spot price from MetalpriceAPI, requested with the metal as base currency."""

    provider_id = METALPRICE_SOURCE

    def __init__(self, client: httpx.AsyncClient, url: str, api_key: str) -> None:
        self._client = client
        self._url = url
        self._api_key = api_key

    async def fetch_quote(self, metal: Metal) -> RawQuote:
        data = await get_json(
            self._client,
            self._url,
            instrument=metal,
            source=self.provider_id,
            params={
                "api_key": self._api_key,
                "base": ISO_METAL_CODES[metal],
                "currencies": Currency.USD.value,
            },
        )
        if not isinstance(data, dict) or data.get("success") is False:
            msg = f"{self.provider_id} reported failure: {data!r}"
            raise ProviderError(msg, instrument=metal, source=self.provider_id)
        value = require_decimal(
            _rates_entry(data, Currency.USD.value, instrument=metal, source=self.provider_id),
            instrument=metal,
            source=self.provider_id,
            field="rates.USD",
        )
        return RawQuote(metal=metal, value=value, captured_at=_now(), provider_id=self.provider_id)


class GoldApiQuoteProvider:
    """Spot price from GoldAPI.io."""

    provider_id = GOLDAPI_SOURCE

    def __init__(self, client: httpx.AsyncClient, base_url: str, api_key: str) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key

    async def fetch_quote(self, metal: Metal) -> RawQuote:
        data = await get_json(
            self._client,
            f"{self._base_url}/{ISO_METAL_CODES[metal]}/{Currency.USD.value}",
            instrument=metal,
            source=self.provider_id,
            headers={"x-access-token": self._api_key, "Content-Type": "application/json"},
        )
        raw_price = data.get("price") if isinstance(data, dict) else None
        value = require_decimal(raw_price, instrument=metal, source=self.provider_id, field="price")
        return RawQuote(metal=metal, value=value, captured_at=_now(), provider_id=self.provider_id)


# ---------------------------------------------------------------------------
# Exchange-rate providers
# ---------------------------------------------------------------------------


class FrankfurterRateProvider:
    """ECB reference rates via api.frankfurter.app."""

    provider_id = FRANKFURTER_SOURCE

    def __init__(self, client: httpx.AsyncClient, url: str) -> None:
        self._client = client
        self._url = url

    async def fetch_rate(self, base: Currency, quote: Currency) -> ExchangeRate:
        pair = f"{base}/{quote}"
        data = await get_json(
            self._client,
            self._url,
            instrument=pair,
            source=self.provider_id,
            params={"from": base.value, "to": quote.value},
        )
        value = require_decimal(
            _rates_entry(data, quote.value, instrument=pair, source=self.provider_id),
            instrument=pair,
            source=self.provider_id,
            field=f"rates.{quote}",
        )
        return ExchangeRate(
            base=base, quote=quote, rate=value, captured_at=_now(), provider_id=self.provider_id
        )


class OpenErApiRateProvider:
    """Daily rates from open.er-api.com (no key required)."""

    provider_id = OPEN_ER_API_SOURCE

    def __init__(self, client: httpx.AsyncClient, base_url: str) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")

    async def fetch_rate(self, base: Currency, quote: Currency) -> ExchangeRate:
        pair = f"{base}/{quote}"
        data = await get_json(
            self._client,
            f"{self._base_url}/{base.value}",
            instrument=pair,
            source=self.provider_id,
        )
        if not isinstance(data, dict) or data.get("result", "success") != "success":
            msg = f"{self.provider_id} reported failure: {data!r}"
            raise ProviderError(msg, instrument=pair, source=self.provider_id)
        value = require_decimal(
            _rates_entry(data, quote.value, instrument=pair, source=self.provider_id),
            instrument=pair,
            source=self.provider_id,
            field=f"rates.{quote}",
        )
        return ExchangeRate(
            base=base, quote=quote, rate=value, captured_at=_now(), provider_id=self.provider_id
        )


class YahooRateProvider:
    """Spot FX from the Yahoo Finance chart endpoint.

    Yahoo quotes USD crosses as ``<QUOTE>=X``; other bases use ``<BASE><QUOTE>=X``.
    """

    provider_id = YAHOO_SOURCE

    def __init__(self, client: httpx.AsyncClient, base_url: str) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")

    async def fetch_rate(self, base: Currency, quote: Currency) -> ExchangeRate:
        pair = f"{base}/{quote}"
        if base == Currency.USD:
            symbol = f"{quote.value}=X"
        else:
            symbol = f"{base.value}{quote.value}=X"
        data = await get_json(
            self._client,
            f"{self._base_url}/{symbol}",
            instrument=pair,
            source=self.provider_id,
            params={"interval": "1d", "range": "1d"},
            headers={"User-Agent": BROWSER_USER_AGENT},
        )
        raw_rate = _yahoo_market_price(data, instrument=pair)
        value = require_decimal(
            raw_rate, instrument=pair, source=self.provider_id, field="regularMarketPrice"
        )
        return ExchangeRate(
            base=base, quote=quote, rate=value, captured_at=_now(), provider_id=self.provider_id
        )
