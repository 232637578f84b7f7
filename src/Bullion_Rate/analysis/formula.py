"""Retail price formula: benchmark quote and exchange rate to local price per gram.

Pure functions only. All arithmetic is Decimal with a fixed operation order
so the same inputs always produce the same output:

1. ounce price in target currency = quote x rate
2. per gram = ounce price / 31.1035
3. compound markups: x (1 + duty), then x (1 + tax), then x (1 + premium)
4. round per gram to 2 dp, then derive every other denomination from the
   rounded figure
"""

from __future__ import annotations

import datetime
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Final

from pydantic import BaseModel, ConfigDict, field_validator

from Bullion_Rate.models.enums import Currency, GoldPurity, Metal, QuoteUnit
from Bullion_Rate.models.market_data import DerivedPrice, ExchangeRate, RawQuote
from Bullion_Rate.utils.exceptions import InvalidInputError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Mass conversion constants
# ---------------------------------------------------------------------------

GRAMS_PER_TROY_OUNCE: Final[Decimal] = Decimal("31.1035")
GRAMS_PER_TOLA: Final[Decimal] = Decimal("11.6638")
GRAMS_PER_TEN_GRAMS: Final[Decimal] = Decimal("10")
GRAMS_PER_KILOGRAM: Final[Decimal] = Decimal("1000")

# ---------------------------------------------------------------------------
# Markup defaults (India: 5% customs + 1% AIDC, 3% IGST, 3% local premium)
# ---------------------------------------------------------------------------

DEFAULT_IMPORT_DUTY: Final[Decimal] = Decimal("0.06")
DEFAULT_TAX: Final[Decimal] = Decimal("0.03")
DEFAULT_PREMIUM: Final[Decimal] = Decimal("0.03")

# ---------------------------------------------------------------------------
# Plausibility bands (exclusive bounds)
# ---------------------------------------------------------------------------

# Benchmark quote, USD per troy ounce
QUOTE_BANDS: Final[dict[Metal, tuple[Decimal, Decimal]]] = {
    Metal.SILVER: (Decimal("15"), Decimal("150")),
    Metal.GOLD: (Decimal("1000"), Decimal("10000")),
}

# Units of target currency per USD
RATE_BANDS: Final[dict[Currency, tuple[Decimal, Decimal]]] = {
    Currency.INR: (Decimal("70"), Decimal("100")),
    Currency.CNY: (Decimal("5"), Decimal("10")),
    Currency.EUR: (Decimal("0.6"), Decimal("1.3")),
    Currency.GBP: (Decimal("0.5"), Decimal("1.1")),
}

# Gold fineness; 24K is the quoted reference grade
GOLD_FINENESS: Final[dict[GoldPurity, Decimal]] = {
    GoldPurity.K24: Decimal("0.999"),
    GoldPurity.K22: Decimal("0.916"),
    GoldPurity.K18: Decimal("0.750"),
    GoldPurity.K14: Decimal("0.585"),
}

_CENT: Final[Decimal] = Decimal("0.01")
_UNIT: Final[Decimal] = Decimal("1")
_FORMULA_SOURCE: Final[str] = "formula"


class MarkupFactors(BaseModel):
    """Ordered multiplicative markups applied to the landed per-gram price."""

    model_config = ConfigDict(frozen=True)

    import_duty: Decimal = DEFAULT_IMPORT_DUTY
    tax: Decimal = DEFAULT_TAX
    premium: Decimal = DEFAULT_PREMIUM

    @field_validator("import_duty", "tax", "premium")
    @classmethod
    def validate_rate(cls, value: Decimal) -> Decimal:
        """Markup rates are fractions and cannot be negative."""
        if value < 0:
            msg = f"markup rate must be non-negative, got {value}"
            raise ValueError(msg)
        return value

    def apply(self, per_gram: Decimal) -> Decimal:
        """Compound duty, then tax, then premium. Never summed."""
        with_duty = per_gram * (1 + self.import_duty)
        with_tax = with_duty * (1 + self.tax)
        return with_tax * (1 + self.premium)


DEFAULT_MARKUPS: Final[MarkupFactors] = MarkupFactors()


def round_cents(value: Decimal) -> Decimal:
    """Round half-up to 2 decimal places."""
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def round_whole(value: Decimal) -> Decimal:
    """Round half-up to a whole currency unit."""
    return value.quantize(_UNIT, rounding=ROUND_HALF_UP)


def in_band(value: Decimal, band: tuple[Decimal, Decimal]) -> bool:
    """Return True if ``value`` lies strictly inside ``band``."""
    low, high = band
    return low < value < high


def denominations(price_per_gram: Decimal) -> dict[str, Decimal]:
    """Derive every denomination from an already-rounded per-gram price.

    Returns:
        Mapping of DerivedPrice field name to value.
    """
    return {
        "price_per_gram": price_per_gram,
        "price_per_ten_grams": round_cents(price_per_gram * GRAMS_PER_TEN_GRAMS),
        "price_per_kilogram": round_whole(price_per_gram * GRAMS_PER_KILOGRAM),
        "price_per_traditional_unit": round_cents(price_per_gram * GRAMS_PER_TOLA),
    }


def compute_derived_price(
    quote: RawQuote | None,
    rate: ExchangeRate | None,
    markups: MarkupFactors = DEFAULT_MARKUPS,
    *,
    now: datetime.datetime | None = None,
) -> DerivedPrice:
    """Compute the retail price for one metal.

    Args:
        quote: Benchmark quote per troy ounce.
        rate: Exchange rate from the quote's currency to the target currency.
        markups: Duty, tax, and premium rates, applied in that order.
        now: Timestamp for ``computed_at``; defaults to the current UTC time.

    Returns:
        DerivedPrice in ``rate.quote`` currency.

    Raises:
        InvalidInputError: If either input is missing, non-positive,
            mismatched, or outside its plausibility band.
    """
    if quote is None:
        raise InvalidInputError(
            "Benchmark quote is missing.", instrument="unknown", source=_FORMULA_SOURCE
        )
    if rate is None:
        raise InvalidInputError(
            "Exchange rate is missing.", instrument=quote.metal, source=_FORMULA_SOURCE
        )

    validate_quote(quote)
    _validate_rate(rate, quote)

    ounce_price = quote.value * rate.rate
    per_gram_landed = ounce_price / GRAMS_PER_TROY_OUNCE
    per_gram = round_cents(markups.apply(per_gram_landed))

    logger.debug(
        "%s: %s %s/oz x %s = %s/oz -> %s %s/g",
        quote.metal,
        quote.value,
        quote.currency,
        rate.rate,
        ounce_price,
        per_gram,
        rate.quote,
    )

    return DerivedPrice(
        metal=quote.metal,
        currency=rate.quote,
        source_quote=quote,
        source_rate=rate,
        computed_at=now or datetime.datetime.now(datetime.UTC),
        purity=GoldPurity.K24 if quote.metal == Metal.GOLD else None,
        **denominations(per_gram),
    )


def derive_purity_price(price: DerivedPrice, purity: GoldPurity) -> DerivedPrice:
    """Scale a 24K gold price to another karat grade.

    The rounded 24K per-gram figure is scaled by fineness ratio, rounded
    again, and every denomination is re-derived from that.

    Raises:
        InvalidInputError: If ``price`` is not a 24K gold price.
    """
    if price.metal != Metal.GOLD or price.purity != GoldPurity.K24:
        msg = f"Purity scaling needs a 24K gold price, got {price.metal} {price.purity}."
        raise InvalidInputError(msg, instrument=price.metal, source=_FORMULA_SOURCE)

    if purity == GoldPurity.K24:
        return price

    ratio = GOLD_FINENESS[purity] / GOLD_FINENESS[GoldPurity.K24]
    per_gram = round_cents(price.price_per_gram * ratio)
    return price.model_copy(update={"purity": purity, **denominations(per_gram)})


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


def validate_quote(quote: RawQuote) -> None:
    """Reject non-positive, wrong-unit, or implausible benchmark quotes."""
    if quote.value <= 0:
        msg = f"Benchmark quote must be positive, got {quote.value}."
        raise InvalidInputError(msg, instrument=quote.metal, source=_FORMULA_SOURCE)
    if quote.unit != QuoteUnit.TROY_OUNCE:
        msg = f"Benchmark quote must be per troy ounce, got {quote.unit}."
        raise InvalidInputError(msg, instrument=quote.metal, source=_FORMULA_SOURCE)
    band = QUOTE_BANDS[quote.metal]
    if not in_band(quote.value, band):
        msg = (
            f"{quote.metal} quote {quote.value} {quote.currency}/oz outside "
            f"plausible range {band[0]}-{band[1]}."
        )
        raise InvalidInputError(msg, instrument=quote.metal, source=_FORMULA_SOURCE)


def _validate_rate(rate: ExchangeRate, quote: RawQuote) -> None:
    """Reject non-positive or implausible rates and currency mismatches."""
    if rate.rate <= 0:
        msg = f"Exchange rate must be positive, got {rate.rate}."
        raise InvalidInputError(msg, instrument=rate.pair, source=_FORMULA_SOURCE)
    if rate.base != quote.currency:
        msg = f"Exchange rate {rate.pair} does not convert from quote currency {quote.currency}."
        raise InvalidInputError(msg, instrument=rate.pair, source=_FORMULA_SOURCE)
    band = RATE_BANDS.get(rate.quote)
    if band is not None and not in_band(rate.rate, band):
        msg = f"{rate.pair} rate {rate.rate} outside plausible range {band[0]}-{band[1]}."
        raise InvalidInputError(msg, instrument=rate.pair, source=_FORMULA_SOURCE)
