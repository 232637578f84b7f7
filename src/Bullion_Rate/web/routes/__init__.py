"""FastAPI route modules for Bullion Rate.

Re-exports all routers so the application factory can import them:
    from Bullion_Rate.web.routes import price_router, cron_router
"""

from Bullion_Rate.web.routes.cron import router as cron_router
from Bullion_Rate.web.routes.health import router as health_router
from Bullion_Rate.web.routes.history import router as history_router
from Bullion_Rate.web.routes.markets import router as markets_router
from Bullion_Rate.web.routes.price import router as price_router

__all__ = [
    "cron_router",
    "health_router",
    "history_router",
    "markets_router",
    "price_router",
]
