"""Scheduled-job routes: persist today's close once per local day.

Meant to be hit by an external scheduler. Guarded by ``CRON_SECRET`` when
one is configured; accepts GET and POST because schedulers differ.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from Bullion_Rate.models.api import DailyCloseResponse
from Bullion_Rate.models.enums import Metal
from Bullion_Rate.services.pricing import PriceService
from Bullion_Rate.web.deps import get_price_service, require_cron_secret

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/cron",
    tags=["cron"],
    dependencies=[Depends(require_cron_secret)],
)


@router.api_route(
    "/save-daily-price",
    methods=["GET", "POST"],
    response_model=DailyCloseResponse,
)
async def save_daily_price(
    service: Annotated[PriceService, Depends(get_price_service)],
    metal: Annotated[Metal, Query()] = Metal.SILVER,
    force: Annotated[bool, Query(description="Overwrite an existing close")] = False,
) -> DailyCloseResponse:
    """Store today's close for ``metal`` unless already stored."""
    result = await service.save_daily_close(metal, force=force)
    logger.info("Daily close job for %s: %s", metal, result.message)
    return result
