"""In-memory and SQLite caching layer with TTL and single-flight computation.

Provides the cache-first pattern for price computation: check cache, compute
on miss, store, and return. The memory tier serves repeat readers inside one
process; the optional SQLite tier lets independent processes sharing a
database file reuse each other's results within the TTL window.

Only successful values are stored. A failed computation propagates to the
caller and the very next call computes again.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
import sqlite3
from collections.abc import Awaitable, Callable
from typing import Final, Protocol

from pydantic import BaseModel, ConfigDict

from Bullion_Rate.data.database import Database
from Bullion_Rate.models.enums import Currency, Metal
from Bullion_Rate.utils.clock import Clock, utc_now

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_PRICE_TTL: Final[int] = 60
DENOMINATIONS_ALL: Final[str] = "all"

# Lazy cleanup: run eviction at most every N accesses
LAZY_CLEANUP_INTERVAL: Final[int] = 100

# SQLite cache table DDL
_CACHE_TABLE_DDL: Final[str] = (
    "CREATE TABLE IF NOT EXISTS service_cache ("
    "  key TEXT PRIMARY KEY,"
    "  value TEXT NOT NULL,"
    "  created_at TEXT NOT NULL,"
    "  ttl_seconds INTEGER NOT NULL"
    ")"
)


def price_cache_key(
    metal: Metal,
    currency: Currency,
    denominations: str = DENOMINATIONS_ALL,
) -> str:
    """Build the cache key for a derived price.

    Scoped by instrument, target currency, and denomination set so that
    unrelated queries never share an entry.
    """
    return f"price:{metal}:{currency}:{denominations}"


def rate_cache_key(base: Currency, quote: Currency) -> str:
    """Build the cache key for a bare exchange rate."""
    return f"rate:{base}:{quote}"


class KeyValueStore(Protocol):
    """Injected cache abstraction used by the price pipeline."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def get_or_compute(
        self,
        key: str,
        ttl_seconds: int,
        compute_fn: Callable[[], Awaitable[str]],
    ) -> str: ...


class CacheEntry(BaseModel):
    """A single cached value with metadata for expiration checking."""

    model_config = ConfigDict(frozen=True)

    key: str
    value: str  # JSON-serialized payload
    created_at: datetime.datetime
    ttl_seconds: int

    def is_expired(self, now: datetime.datetime | None = None) -> bool:
        """Return True if this entry has exceeded its TTL.

        A ttl_seconds of 0 means the entry never expires.
        """
        if self.ttl_seconds == 0:
            return False
        current = now or utc_now()
        age = (current - self.created_at).total_seconds()
        return age >= self.ttl_seconds


class ServiceCache:
    """Two-tier cache: in-memory dict plus optional shared SQLite table.

    Concurrent ``get_or_compute`` calls for the same key inside one process
    collapse into a single computation via a per-key asyncio.Lock. Across
    processes there is no lock: each may compute once on a miss, and all
    converge on the stored value within one TTL.

    Usage::

        async with Database("data/bullion.db") as db:
            cache = ServiceCache(database=db)
            await cache.initialize()

            payload = await cache.get_or_compute(
                price_cache_key(Metal.SILVER, Currency.INR),
                60,
                compute_price_json,
            )
    """

    def __init__(self, database: Database | None = None, *, clock: Clock = utc_now) -> None:
        self._database = database
        self._clock = clock
        self._memory_cache: dict[str, CacheEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._access_count: int = 0
        self._sqlite_initialized: bool = False

        logger.info(
            "ServiceCache initialized: sqlite=%s",
            "enabled" if database is not None else "disabled",
        )

    async def initialize(self) -> None:
        """Create the SQLite cache table if a database is configured.

        Must be called after the database connection is open. Safe to call
        multiple times (idempotent).
        """
        if self._database is not None and not self._sqlite_initialized:
            conn = self._database.connection
            await conn.execute(_CACHE_TABLE_DDL)
            await conn.commit()
            self._sqlite_initialized = True
            logger.info("SQLite cache table initialized.")

    async def get(self, key: str) -> str | None:
        """Retrieve a cached value by key.

        Checks in-memory first, then SQLite. Returns None on miss or if the
        entry has expired. Expired entries are lazily removed. A SQLite
        read failure is logged and treated as a miss.
        """
        self._increment_access_count()
        now = self._clock()

        entry = self._memory_cache.get(key)
        if entry is not None:
            if entry.is_expired(now):
                del self._memory_cache[key]
                logger.debug("Memory cache expired: %s", key)
            else:
                logger.debug("Memory cache hit: %s", key)
                return entry.value

        if self._sqlite_enabled:
            try:
                entry = await self._sqlite_get(key)
            except sqlite3.Error:
                logger.warning("SQLite cache read failed for %s", key, exc_info=True)
                return None
            if entry is not None:
                if entry.is_expired(now):
                    logger.debug("SQLite cache expired: %s", key)
                    try:
                        await self._sqlite_delete(key)
                    except sqlite3.Error:
                        logger.warning("SQLite cache delete failed for %s", key, exc_info=True)
                    return None
                logger.debug("SQLite cache hit: %s", key)
                self._memory_cache[key] = entry
                return entry.value

        logger.debug("Cache miss: %s", key)
        return None

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a value in memory and, when configured, in SQLite.

        A SQLite write failure is logged; the memory tier still holds the value.
        """
        entry = CacheEntry(
            key=key,
            value=value,
            created_at=self._clock(),
            ttl_seconds=ttl_seconds,
        )
        self._memory_cache[key] = entry

        if self._sqlite_enabled:
            try:
                await self._sqlite_set(entry)
            except sqlite3.Error:
                logger.warning("SQLite cache write failed for %s", key, exc_info=True)
                return
        logger.debug("Cache set: %s (ttl=%ds)", key, ttl_seconds)

    async def get_or_compute(
        self,
        key: str,
        ttl_seconds: int,
        compute_fn: Callable[[], Awaitable[str]],
    ) -> str:
        """Return the cached value for ``key``, computing and storing it on a miss.

        Exceptions raised by ``compute_fn`` propagate unchanged and nothing
        is stored, so the next call retries the computation.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            # Another waiter may have filled the entry while we queued
            cached = await self.get(key)
            if cached is not None:
                return cached

            logger.debug("Computing value for %s", key)
            value = await compute_fn()
            await self.set(key, value, ttl_seconds)
            return value

    async def invalidate(self, key: str) -> None:
        """Remove a specific key from both cache tiers."""
        self._memory_cache.pop(key, None)

        if self._sqlite_enabled:
            await self._sqlite_delete(key)

        logger.debug("Cache invalidated: %s", key)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @property
    def _sqlite_enabled(self) -> bool:
        return self._database is not None and self._sqlite_initialized

    def _increment_access_count(self) -> None:
        """Track accesses and trigger lazy cleanup when threshold is reached."""
        self._access_count += 1
        if self._access_count >= LAZY_CLEANUP_INTERVAL:
            self._access_count = 0
            self._evict_expired_memory_entries()

    def _evict_expired_memory_entries(self) -> None:
        """Remove expired entries and idle locks from the in-memory tier."""
        now = self._clock()
        expired_keys = [k for k, v in self._memory_cache.items() if v.is_expired(now)]
        for key in expired_keys:
            del self._memory_cache[key]

        idle_locks = [k for k, lock in self._locks.items() if not lock.locked()]
        for key in idle_locks:
            del self._locks[key]

        if expired_keys:
            logger.debug(
                "Lazy cleanup: evicted %d expired memory entries",
                len(expired_keys),
            )

    # ------------------------------------------------------------------
    # SQLite operations
    # ------------------------------------------------------------------

    async def _sqlite_get(self, key: str) -> CacheEntry | None:
        """Retrieve a CacheEntry from the SQLite cache table."""
        if self._database is None:
            return None

        conn = self._database.connection
        cursor = await conn.execute(
            "SELECT key, value, created_at, ttl_seconds FROM service_cache WHERE key = ?",
            (key,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None

        return CacheEntry(
            key=row[0],
            value=row[1],
            created_at=datetime.datetime.fromisoformat(row[2]),
            ttl_seconds=row[3],
        )

    async def _sqlite_set(self, entry: CacheEntry) -> None:
        """Insert or replace a CacheEntry in the SQLite cache table."""
        if self._database is None:
            return

        conn = self._database.connection
        await conn.execute(
            "INSERT OR REPLACE INTO service_cache (key, value, created_at, ttl_seconds) "
            "VALUES (?, ?, ?, ?)",
            (
                entry.key,
                entry.value,
                entry.created_at.isoformat(),
                entry.ttl_seconds,
            ),
        )
        await conn.commit()

    async def _sqlite_delete(self, key: str) -> None:
        """Delete a single key from the SQLite cache table."""
        if self._database is None:
            return

        conn = self._database.connection
        await conn.execute("DELETE FROM service_cache WHERE key = ?", (key,))
        await conn.commit()
