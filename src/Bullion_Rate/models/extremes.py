"""Intraday extremes and daily close models.

DailyExtremes is the server-side record of one local calendar day's open,
running high, and running low. ClientExtremesView is the client-held
running max/min that compensates for replicas disagreeing on that record.
"""

import datetime
from decimal import Decimal
from typing import Self

from pydantic import BaseModel, ConfigDict, field_serializer, model_validator

from Bullion_Rate.models.enums import Metal


class DailyExtremes(BaseModel):
    """Open, high, and low for one local calendar day.

    Frozen: the tracker replaces the record rather than mutating it.
    """

    model_config = ConfigDict(frozen=True)

    date: datetime.date
    open_price: Decimal
    high: Decimal
    high_at: datetime.datetime
    low: Decimal
    low_at: datetime.datetime
    last_updated_at: datetime.datetime

    @field_serializer("open_price", "high", "low")
    def serialize_decimal(self, value: Decimal) -> str:
        """Serialize Decimal fields as strings to preserve precision."""
        return str(value)

    @model_validator(mode="after")
    def validate_bounds(self) -> Self:
        """Ensure low never exceeds high."""
        if self.low > self.high:
            msg = f"low ({self.low}) must not exceed high ({self.high})"
            raise ValueError(msg)
        return self


class StoredDailyPrice(BaseModel):
    """Closing price for one metal on one local calendar day."""

    model_config = ConfigDict(frozen=True)

    date: datetime.date
    metal: Metal
    price_per_gram: Decimal
    price_per_kilogram: Decimal
    benchmark_quote: Decimal
    exchange_rate: Decimal
    source: str
    timestamp: datetime.datetime

    @field_serializer(
        "price_per_gram",
        "price_per_kilogram",
        "benchmark_quote",
        "exchange_rate",
    )
    def serialize_decimal(self, value: Decimal) -> str:
        """Serialize Decimal fields as strings to preserve precision."""
        return str(value)


class ExtremePoint(BaseModel):
    """A price value and the moment it was observed."""

    model_config = ConfigDict(frozen=True)

    value: Decimal
    observed_at: datetime.datetime

    @field_serializer("value")
    def serialize_decimal(self, value: Decimal) -> str:
        """Serialize Decimal fields as strings to preserve precision."""
        return str(value)


class ClientExtremesView(BaseModel):
    """Client-side best high and best low for one local calendar day.

    Non-authoritative: derived from server responses, never written back.
    """

    model_config = ConfigDict(frozen=True)

    date: datetime.date
    best_high: ExtremePoint
    best_low: ExtremePoint
