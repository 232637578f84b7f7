"""Cross-metal routes: gold-silver ratio, USD prices, and both metals at once."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Response

from Bullion_Rate.models.api import (
    CombinedPricesResponse,
    GoldSilverRatioResponse,
    UsdPricesResponse,
)
from Bullion_Rate.services.pricing import PriceService
from Bullion_Rate.web.deps import get_price_service
from Bullion_Rate.web.routes.price import cache_control_header

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["markets"])


@router.get("/gold-silver-ratio", response_model=GoldSilverRatioResponse)
async def get_gold_silver_ratio(
    response: Response,
    service: Annotated[PriceService, Depends(get_price_service)],
) -> GoldSilverRatioResponse:
    """Return gold/silver in USD/oz terms with an interpretation."""
    result = await service.get_gold_silver_ratio()
    response.headers["Cache-Control"] = cache_control_header(service.ttl_seconds)
    return result


@router.get("/silver-price-usd", response_model=UsdPricesResponse)
async def get_usd_prices(
    response: Response,
    service: Annotated[PriceService, Depends(get_price_service)],
) -> UsdPricesResponse:
    """Return silver and gold in USD per ounce, gram and kilogram."""
    result = await service.get_usd_prices()
    response.headers["Cache-Control"] = cache_control_header(service.ttl_seconds)
    return result


@router.get("/combined-prices", response_model=CombinedPricesResponse)
async def get_combined_prices(
    response: Response,
    service: Annotated[PriceService, Depends(get_price_service)],
) -> CombinedPricesResponse:
    """Return the silver and gold price responses together with their ratio."""
    result = await service.get_combined_prices()
    response.headers["Cache-Control"] = cache_control_header(service.ttl_seconds)
    return result
