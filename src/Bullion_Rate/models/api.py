"""Public HTTP payload for the price endpoints.

Field names are snake_case in Python and camelCase on the wire. Prices go
out as JSON numbers because browser consumers do arithmetic on them. The
Decimal values are rounded before they reach these models (2 dp, except
USD per gram at 3 dp).
"""

import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from Bullion_Rate.models.enums import Currency, Metal, RatioInterpretation

_PRICE_FIELDS: tuple[str, ...] = (
    "price_per_gram",
    "price_per_ten_grams",
    "price_per_kilogram",
    "price_per_traditional_unit",
    "change_24h",
    "change_percent_24h",
    "high_24h",
    "low_24h",
    "today_high",
    "today_low",
    "today_open",
    "benchmark_quote",
    "exchange_rate",
)


class PriceResponse(BaseModel):
    """Body of ``GET /api/price``.

    The ``today_*`` fields are None when the extremes store was unavailable
    for this request; the price itself is still authoritative.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    metal: Metal
    price_per_gram: Decimal = Field(alias="pricePerGram")
    price_per_ten_grams: Decimal = Field(alias="pricePerTenGrams")
    price_per_kilogram: Decimal = Field(alias="pricePerKilogram")
    price_per_traditional_unit: Decimal = Field(alias="pricePerTraditionalUnit")
    currency: Currency
    timestamp: datetime.datetime
    change_24h: Decimal = Field(alias="change24h")
    change_percent_24h: Decimal = Field(alias="changePercent24h")
    high_24h: Decimal = Field(alias="high24h")
    low_24h: Decimal = Field(alias="low24h")
    source: str
    today_high: Decimal | None = Field(default=None, alias="todayHigh")
    today_high_time: datetime.datetime | None = Field(default=None, alias="todayHighTime")
    today_low: Decimal | None = Field(default=None, alias="todayLow")
    today_low_time: datetime.datetime | None = Field(default=None, alias="todayLowTime")
    today_open: Decimal | None = Field(default=None, alias="todayOpen")
    benchmark_quote: Decimal = Field(alias="benchmarkQuote")
    exchange_rate: Decimal = Field(alias="exchangeRate")
    purities: dict[str, Decimal] | None = None

    @field_serializer(*_PRICE_FIELDS, when_used="json")
    def serialize_price(self, value: Decimal | None) -> float | None:
        """Emit prices as JSON numbers."""
        return float(value) if value is not None else None

    @field_serializer("purities", when_used="json")
    def serialize_purities(self, value: dict[str, Decimal] | None) -> dict[str, float] | None:
        """Emit per-karat per-gram prices as JSON numbers."""
        if value is None:
            return None
        return {grade: float(price) for grade, price in value.items()}


class DailyCloseResponse(BaseModel):
    """Outcome of a scheduled daily-close save."""

    model_config = ConfigDict(frozen=True)

    success: bool
    skipped: bool
    message: str
    date: datetime.date
    price_per_gram: Decimal | None = None

    @field_serializer("price_per_gram", when_used="json")
    def serialize_price(self, value: Decimal | None) -> float | None:
        """Emit the stored price as a JSON number."""
        return float(value) if value is not None else None


def _as_float_map(value: dict[str, Decimal]) -> dict[str, float]:
    return {key: float(amount) for key, amount in value.items()}


class GoldSilverRatioResponse(BaseModel):
    """Body of ``GET /api/gold-silver-ratio``.

    ``ratio`` compares the USD/oz benchmark quotes. The per-gram figures are
    the local retail prices the ratio was read alongside.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    ratio: Decimal
    interpretation: RatioInterpretation
    interpretation_text: str = Field(alias="interpretationText")
    historical_context: str = Field(alias="historicalContext")
    investment_hint: str = Field(alias="investmentHint")
    gold_price_per_gram: Decimal = Field(alias="goldPricePerGram")
    silver_price_per_gram: Decimal = Field(alias="silverPricePerGram")
    gold_price_per_ounce_usd: Decimal = Field(alias="goldPricePerOzUsd")
    silver_price_per_ounce_usd: Decimal = Field(alias="silverPricePerOzUsd")
    currency: Currency
    exchange_rate: Decimal = Field(alias="exchangeRate")
    timestamp: datetime.datetime

    @field_serializer(
        "ratio",
        "gold_price_per_gram",
        "silver_price_per_gram",
        "gold_price_per_ounce_usd",
        "silver_price_per_ounce_usd",
        "exchange_rate",
        when_used="json",
    )
    def serialize_number(self, value: Decimal) -> float:
        return float(value)


class UsdSpotPrice(BaseModel):
    """One metal's unmarked-up USD price, with the local retail price beside it."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    metal: Metal
    price_per_ounce: Decimal = Field(alias="pricePerOz")
    price_per_gram: Decimal = Field(alias="pricePerGram")
    price_per_kilogram: Decimal = Field(alias="pricePerKg")
    local_price_per_gram: Decimal = Field(alias="localPricePerGram")
    local_currency: Currency = Field(alias="localCurrency")
    source: str

    @field_serializer(
        "price_per_ounce",
        "price_per_gram",
        "price_per_kilogram",
        "local_price_per_gram",
        when_used="json",
    )
    def serialize_price(self, value: Decimal) -> float:
        return float(value)


class UsdPricesResponse(BaseModel):
    """Body of ``GET /api/silver-price-usd``.

    ``exchange_rates`` maps currency code to units per USD and lists only
    the currencies that resolved for this request.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    silver: UsdSpotPrice
    gold: UsdSpotPrice
    gold_silver_ratio: Decimal = Field(alias="goldSilverRatio")
    exchange_rates: dict[str, Decimal] = Field(alias="exchangeRates")
    timestamp: datetime.datetime

    @field_serializer("gold_silver_ratio", when_used="json")
    def serialize_ratio(self, value: Decimal) -> float:
        return float(value)

    @field_serializer("exchange_rates", when_used="json")
    def serialize_rates(self, value: dict[str, Decimal]) -> dict[str, float]:
        return _as_float_map(value)


class CombinedPricesResponse(BaseModel):
    """Body of ``GET /api/combined-prices``: both metals plus their ratio."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    silver: PriceResponse
    gold: PriceResponse
    ratio: GoldSilverRatioResponse
    exchange_rates: dict[str, Decimal] = Field(alias="exchangeRates")
    timestamp: datetime.datetime

    @field_serializer("exchange_rates", when_used="json")
    def serialize_rates(self, value: dict[str, Decimal]) -> dict[str, float]:
        return _as_float_map(value)
