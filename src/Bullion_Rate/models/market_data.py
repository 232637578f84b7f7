"""Market data models: benchmark quotes, exchange rates, and derived prices.

All price fields use Decimal (constructed from strings) with custom
serializers to prevent silent float conversion in JSON roundtrips.
"""

import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, computed_field, field_serializer

from Bullion_Rate.models.enums import Currency, GoldPurity, Metal, QuoteUnit


class RawQuote(BaseModel):
    """Benchmark spot quote for one metal, per troy ounce, in a foreign currency.

    Frozen because a quote is a point-in-time snapshot from one provider.
    """

    model_config = ConfigDict(frozen=True)

    metal: Metal
    value: Decimal
    unit: QuoteUnit = QuoteUnit.TROY_OUNCE
    currency: Currency = Currency.USD
    captured_at: datetime.datetime
    provider_id: str

    @field_serializer("value")
    def serialize_decimal(self, value: Decimal) -> str:
        """Serialize Decimal fields as strings to preserve precision."""
        return str(value)


class ExchangeRate(BaseModel):
    """Units of ``quote`` currency per one unit of ``base`` currency."""

    model_config = ConfigDict(frozen=True)

    base: Currency
    quote: Currency
    rate: Decimal
    captured_at: datetime.datetime
    provider_id: str

    @field_serializer("rate")
    def serialize_decimal(self, value: Decimal) -> str:
        """Serialize Decimal fields as strings to preserve precision."""
        return str(value)

    @property
    def pair(self) -> str:
        """Human-readable pair label, e.g. ``USD/INR``."""
        return f"{self.base}/{self.quote}"


class DerivedPrice(BaseModel):
    """Retail price in the target currency, with every denomination.

    Every denomination is derived from the already-rounded ``price_per_gram``
    so that a reader can verify any figure by a single multiplication.
    ``purity`` is None for silver and set for each gold karat grade.
    """

    model_config = ConfigDict(frozen=True)

    metal: Metal
    price_per_gram: Decimal
    price_per_ten_grams: Decimal
    price_per_kilogram: Decimal
    price_per_traditional_unit: Decimal
    currency: Currency
    source_quote: RawQuote
    source_rate: ExchangeRate
    computed_at: datetime.datetime
    purity: GoldPurity | None = None

    @field_serializer(
        "price_per_gram",
        "price_per_ten_grams",
        "price_per_kilogram",
        "price_per_traditional_unit",
    )
    def serialize_decimal(self, value: Decimal) -> str:
        """Serialize Decimal fields as strings to preserve precision."""
        return str(value)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def source(self) -> str:
        """Providers that produced this price, quote first."""
        return f"{self.source_quote.provider_id}+{self.source_rate.provider_id}"
