"""Price routes: current derived price per metal, with HTTP cache directives."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response

from Bullion_Rate.models.api import PriceResponse
from Bullion_Rate.models.enums import Metal
from Bullion_Rate.services.pricing import PriceService
from Bullion_Rate.web.deps import get_price_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["price"])


def cache_control_header(ttl_seconds: int) -> str:
    """Cache directive matching the server TTL, with a 2x stale-while-revalidate window."""
    return (
        f"public, max-age={ttl_seconds}, s-maxage={ttl_seconds}, "
        f"stale-while-revalidate={ttl_seconds * 2}"
    )


@router.get("/price", response_model=PriceResponse)
async def get_price(
    response: Response,
    service: Annotated[PriceService, Depends(get_price_service)],
    metal: Annotated[Metal, Query(description="Metal to price")] = Metal.SILVER,
) -> PriceResponse:
    """Return the current retail price, 24h change, and today's extremes."""
    result = await service.get_price_response(metal)
    response.headers["Cache-Control"] = cache_control_header(service.ttl_seconds)
    return result


@router.get("/gold-price", response_model=PriceResponse)
async def get_gold_price(
    response: Response,
    service: Annotated[PriceService, Depends(get_price_service)],
) -> PriceResponse:
    """Shortcut for ``/api/price?metal=gold``."""
    result = await service.get_price_response(Metal.GOLD)
    response.headers["Cache-Control"] = cache_control_header(service.ttl_seconds)
    return result
