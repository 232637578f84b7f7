"""StrEnum types for the bullion pricing domain.

Values are lowercase strings (currencies use their ISO codes).
Use enum members in business logic, never raw strings.
"""

from enum import StrEnum


class Metal(StrEnum):
    """Precious metal priced by the engine."""

    SILVER = "silver"
    GOLD = "gold"


class Currency(StrEnum):
    """ISO currency codes the engine quotes or converts through."""

    USD = "USD"
    INR = "INR"
    CNY = "CNY"
    EUR = "EUR"
    GBP = "GBP"


class QuoteUnit(StrEnum):
    """Mass unit a benchmark quote is expressed in."""

    TROY_OUNCE = "troy_ounce"


class GoldPurity(StrEnum):
    """Karat grade of a gold price."""

    K24 = "24k"
    K22 = "22k"
    K18 = "18k"
    K14 = "14k"


class SchedulerState(StrEnum):
    """Lifecycle state of a client poll scheduler."""

    IDLE = "idle"
    SCHEDULED = "scheduled"
    SUSPENDED = "suspended"
    STOPPED = "stopped"


class RatioInterpretation(StrEnum):
    """Reading of the gold-silver ratio from silver's point of view."""

    SILVER_UNDERVALUED = "silver_undervalued"
    NORMAL = "normal"
    SILVER_OVERVALUED = "silver_overvalued"
