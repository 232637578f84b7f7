"""Pydantic v2 models, enums, and type definitions.

Re-exports all public models so consumers can import directly:
    from Bullion_Rate.models import DerivedPrice, Metal, DailyExtremes
"""

from Bullion_Rate.models.api import (
    CombinedPricesResponse,
    DailyCloseResponse,
    GoldSilverRatioResponse,
    PriceResponse,
    UsdPricesResponse,
    UsdSpotPrice,
)
from Bullion_Rate.models.enums import (
    Currency,
    GoldPurity,
    Metal,
    QuoteUnit,
    RatioInterpretation,
    SchedulerState,
)
from Bullion_Rate.models.extremes import (
    ClientExtremesView,
    DailyExtremes,
    ExtremePoint,
    StoredDailyPrice,
)
from Bullion_Rate.models.health import HealthStatus
from Bullion_Rate.models.market_data import DerivedPrice, ExchangeRate, RawQuote

__all__ = [
    # Enums
    "Currency",
    "GoldPurity",
    "Metal",
    "QuoteUnit",
    "RatioInterpretation",
    "SchedulerState",
    # Market data
    "DerivedPrice",
    "ExchangeRate",
    "RawQuote",
    # Extremes
    "ClientExtremesView",
    "DailyExtremes",
    "ExtremePoint",
    "StoredDailyPrice",
    # API payloads
    "CombinedPricesResponse",
    "DailyCloseResponse",
    "GoldSilverRatioResponse",
    "PriceResponse",
    "UsdPricesResponse",
    "UsdSpotPrice",
    # Health
    "HealthStatus",
]
