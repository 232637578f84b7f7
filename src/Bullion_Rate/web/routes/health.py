"""Health route: dependency status as JSON."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from Bullion_Rate.models.health import HealthStatus
from Bullion_Rate.services.health import HealthService
from Bullion_Rate.web.deps import get_health_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health", response_model=HealthStatus)
async def health(
    service: Annotated[HealthService, Depends(get_health_service)],
) -> HealthStatus:
    """Run all dependency checks and return the consolidated status."""
    return await service.check_all()
