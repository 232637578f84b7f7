"""Fetching, caching, extremes tracking, and pricing services.

Re-exports all public service classes so consumers can import directly:
    from Bullion_Rate.services import PriceService, RateFetcher
"""

from Bullion_Rate.services.cache import CacheEntry, KeyValueStore, ServiceCache, price_cache_key
from Bullion_Rate.services.extremes import DailyExtremesTracker, advance_extremes
from Bullion_Rate.services.health import HealthService
from Bullion_Rate.services.pricing import PriceService
from Bullion_Rate.services.rate_fetcher import RateFetcher, build_rate_fetcher

__all__ = [
    # Infrastructure
    "CacheEntry",
    "KeyValueStore",
    "ServiceCache",
    "price_cache_key",
    # Market data
    "RateFetcher",
    "build_rate_fetcher",
    # Pricing
    "DailyExtremesTracker",
    "PriceService",
    "advance_extremes",
    # Auxiliary
    "HealthService",
]
