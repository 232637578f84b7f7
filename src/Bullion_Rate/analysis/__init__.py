"""Pricing math for the bullion engine.

Re-exports all public functions so consumers can import directly:
    from Bullion_Rate.analysis import compute_derived_price, MarkupFactors
"""

from Bullion_Rate.analysis.formula import (
    DEFAULT_MARKUPS,
    GRAMS_PER_TOLA,
    GRAMS_PER_TROY_OUNCE,
    QUOTE_BANDS,
    RATE_BANDS,
    MarkupFactors,
    compute_derived_price,
    denominations,
    derive_purity_price,
    in_band,
    round_cents,
    validate_quote,
)
from Bullion_Rate.analysis.ratio import (
    RatioReading,
    gold_silver_ratio,
    interpret_ratio,
    usd_spot_denominations,
)

__all__ = [
    "DEFAULT_MARKUPS",
    "GRAMS_PER_TOLA",
    "GRAMS_PER_TROY_OUNCE",
    "QUOTE_BANDS",
    "RATE_BANDS",
    "MarkupFactors",
    "RatioReading",
    "compute_derived_price",
    "denominations",
    "derive_purity_price",
    "gold_silver_ratio",
    "in_band",
    "interpret_ratio",
    "round_cents",
    "usd_spot_denominations",
    "validate_quote",
]
