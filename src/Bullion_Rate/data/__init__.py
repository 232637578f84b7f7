"""Persistence layer for Bullion Rate.

Re-exports the main public API: Database for connection management,
PriceRepository for typed query operations.
"""

from Bullion_Rate.data.database import Database
from Bullion_Rate.data.repository import PriceRepository

__all__ = ["Database", "PriceRepository"]
