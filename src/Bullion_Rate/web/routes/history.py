"""History routes: stored daily closes per metal."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from Bullion_Rate.models.enums import Metal
from Bullion_Rate.models.extremes import StoredDailyPrice
from Bullion_Rate.services.pricing import DEFAULT_HISTORY_DAYS, MAX_HISTORY_DAYS, PriceService
from Bullion_Rate.web.deps import get_price_service

router = APIRouter(prefix="/api", tags=["history"])


@router.get("/history", response_model=list[StoredDailyPrice])
async def get_history(
    service: Annotated[PriceService, Depends(get_price_service)],
    metal: Annotated[Metal, Query()] = Metal.SILVER,
    days: Annotated[int, Query(ge=1, le=MAX_HISTORY_DAYS)] = DEFAULT_HISTORY_DAYS,
) -> list[StoredDailyPrice]:
    """Return up to ``days`` stored daily closes, oldest first."""
    return await service.history(metal, days=days)
