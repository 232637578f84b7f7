"""Gold-silver ratio and plain USD spot denominations.

Both work on benchmark quotes alone: no exchange rate and no markups. The
ratio is gold USD/oz divided by silver USD/oz; a high ratio means silver is
cheap relative to gold.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Final

from pydantic import BaseModel, ConfigDict

from Bullion_Rate.analysis.formula import (
    GRAMS_PER_KILOGRAM,
    GRAMS_PER_TROY_OUNCE,
    round_cents,
    validate_quote,
)
from Bullion_Rate.models.enums import Currency, Metal, RatioInterpretation
from Bullion_Rate.models.market_data import RawQuote
from Bullion_Rate.utils.exceptions import InvalidInputError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Ratio thresholds (inclusive)
# ---------------------------------------------------------------------------

EXTREMELY_UNDERVALUED_RATIO: Final[Decimal] = Decimal("90")
UNDERVALUED_RATIO: Final[Decimal] = Decimal("80")
OVERVALUED_RATIO: Final[Decimal] = Decimal("50")

_MILLS: Final[Decimal] = Decimal("0.001")
_RATIO_SOURCE: Final[str] = "ratio"


class RatioReading(BaseModel):
    """Human-readable interpretation of one ratio value."""

    model_config = ConfigDict(frozen=True)

    interpretation: RatioInterpretation
    summary: str
    historical_context: str
    investment_hint: str


def gold_silver_ratio(gold: RawQuote, silver: RawQuote) -> Decimal:
    """Return gold/silver rounded to 2 dp.

    Raises:
        InvalidInputError: If the quotes are for the wrong metals, are in
            different currencies, or fail quote validation.
    """
    if gold.metal != Metal.GOLD or silver.metal != Metal.SILVER:
        msg = f"Ratio needs a gold and a silver quote, got {gold.metal} and {silver.metal}."
        raise InvalidInputError(msg, instrument="gold/silver", source=_RATIO_SOURCE)
    if gold.currency != silver.currency:
        msg = f"Ratio quotes must share a currency, got {gold.currency} and {silver.currency}."
        raise InvalidInputError(msg, instrument="gold/silver", source=_RATIO_SOURCE)
    validate_quote(gold)
    validate_quote(silver)

    ratio = round_cents(gold.value / silver.value)
    logger.debug("Gold-silver ratio: %s / %s = %s", gold.value, silver.value, ratio)
    return ratio


def interpret_ratio(ratio: Decimal) -> RatioReading:
    """Classify ``ratio`` against the historical 60-80 band."""
    shown = f"{ratio:.1f}"
    if ratio >= EXTREMELY_UNDERVALUED_RATIO:
        return RatioReading(
            interpretation=RatioInterpretation.SILVER_UNDERVALUED,
            summary="Silver is significantly undervalued relative to gold",
            historical_context=(
                f"Current ratio of {shown} is well above the historical average of 65-70, "
                "a level usually seen during economic uncertainty."
            ),
            investment_hint=(
                "Strong signal for silver. Consider a larger silver allocation."
            ),
        )
    if ratio >= UNDERVALUED_RATIO:
        return RatioReading(
            interpretation=RatioInterpretation.SILVER_UNDERVALUED,
            summary="Silver appears undervalued relative to gold",
            historical_context=(
                f"Ratio of {shown} is above the normal range (60-80). "
                "Silver has room to outperform gold."
            ),
            investment_hint="Favorable entry point for silver over the medium term.",
        )
    if ratio <= OVERVALUED_RATIO:
        return RatioReading(
            interpretation=RatioInterpretation.SILVER_OVERVALUED,
            summary="Silver appears overvalued relative to gold",
            historical_context=(
                f"Ratio of {shown} is below historical norms. "
                "Silver is expensive compared to gold."
            ),
            investment_hint="Gold looks better value. Wait for the ratio to normalize.",
        )
    return RatioReading(
        interpretation=RatioInterpretation.NORMAL,
        summary="Gold-silver ratio is in the normal range",
        historical_context=(
            f"Ratio of {shown} is within the typical 60-80 range. "
            "Both metals are fairly valued against each other."
        ),
        investment_hint="Either metal is reasonable. Choose by goals and risk tolerance.",
    )


def usd_spot_denominations(quote: RawQuote) -> dict[str, Decimal]:
    """USD per ounce, gram and kilogram for a quote, before any markup.

    Per gram keeps 3 dp since silver trades near one dollar a gram.

    Raises:
        InvalidInputError: If the quote is not in USD or fails validation.
    """
    if quote.currency != Currency.USD:
        msg = f"USD denominations need a USD quote, got {quote.currency}."
        raise InvalidInputError(msg, instrument=quote.metal, source=_RATIO_SOURCE)
    validate_quote(quote)

    per_gram = quote.value / GRAMS_PER_TROY_OUNCE
    return {
        "price_per_ounce": round_cents(quote.value),
        "price_per_gram": per_gram.quantize(_MILLS, rounding=ROUND_HALF_UP),
        "price_per_kilogram": round_cents(per_gram * GRAMS_PER_KILOGRAM),
    }
