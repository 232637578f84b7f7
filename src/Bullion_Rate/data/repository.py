"""Repository layer for daily closes and intraday extremes.

Provides typed operations backed by a Database instance. All queries use
parameterized SQL (no string interpolation). Decimals are stored as TEXT and
timestamps as ISO 8601 strings. Any sqlite3 failure, or use of a closed
Database, surfaces as StorageFailureError.
"""

import contextlib
import datetime
import logging
import sqlite3
from collections.abc import Iterator
from decimal import Decimal

from Bullion_Rate.data.database import Database
from Bullion_Rate.models.enums import Currency, Metal
from Bullion_Rate.models.extremes import DailyExtremes, StoredDailyPrice
from Bullion_Rate.utils.exceptions import StorageFailureError

logger = logging.getLogger(__name__)

_STORAGE_SOURCE = "sqlite"


@contextlib.contextmanager
def _storage_errors(operation: str, metal: Metal) -> Iterator[None]:
    """Translate sqlite3 and connection-state errors into StorageFailureError."""
    try:
        yield
    except (sqlite3.Error, RuntimeError) as exc:
        msg = f"Storage {operation} failed for {metal}: {exc}"
        raise StorageFailureError(msg, instrument=metal, source=_STORAGE_SOURCE) from exc


class PriceRepository:
    """Query interface for the Bullion Rate persistence layer.

    All methods operate through the provided Database instance's connection.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    # ------------------------------------------------------------------
    # Intraday extremes
    # ------------------------------------------------------------------

    async def get_extremes(self, metal: Metal, currency: Currency) -> DailyExtremes | None:
        """Return the stored extremes record, or None if none exists yet."""
        with _storage_errors("read extremes", metal):
            conn = self._db.connection
            cursor = await conn.execute(
                "SELECT date, open_price, high, high_at, low, low_at, last_updated_at "
                "FROM daily_extremes WHERE metal = ? AND currency = ?",
                (metal.value, currency.value),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return DailyExtremes(
            date=datetime.date.fromisoformat(row[0]),
            open_price=Decimal(row[1]),
            high=Decimal(row[2]),
            high_at=datetime.datetime.fromisoformat(row[3]),
            low=Decimal(row[4]),
            low_at=datetime.datetime.fromisoformat(row[5]),
            last_updated_at=datetime.datetime.fromisoformat(row[6]),
        )

    async def save_extremes(
        self,
        metal: Metal,
        currency: Currency,
        extremes: DailyExtremes,
    ) -> None:
        """Replace the extremes record for ``metal``/``currency``.

        Last write wins: concurrent writers are not coordinated.
        """
        with _storage_errors("write extremes", metal):
            conn = self._db.connection
            await conn.execute(
                "INSERT OR REPLACE INTO daily_extremes "
                "(metal, currency, date, open_price, high, high_at, low, low_at, "
                "last_updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    metal.value,
                    currency.value,
                    extremes.date.isoformat(),
                    str(extremes.open_price),
                    str(extremes.high),
                    extremes.high_at.isoformat(),
                    str(extremes.low),
                    extremes.low_at.isoformat(),
                    extremes.last_updated_at.isoformat(),
                ),
            )
            await conn.commit()

    # ------------------------------------------------------------------
    # Daily closes
    # ------------------------------------------------------------------

    async def save_daily_price(self, price: StoredDailyPrice) -> None:
        """Insert or replace the close for ``price.metal`` on ``price.date``."""
        with _storage_errors("write daily close", price.metal):
            conn = self._db.connection
            await conn.execute(
                "INSERT OR REPLACE INTO daily_prices "
                "(metal, date, price_per_gram, price_per_kilogram, benchmark_quote, "
                "exchange_rate, source, timestamp) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    price.metal.value,
                    price.date.isoformat(),
                    str(price.price_per_gram),
                    str(price.price_per_kilogram),
                    str(price.benchmark_quote),
                    str(price.exchange_rate),
                    price.source,
                    price.timestamp.isoformat(),
                ),
            )
            await conn.commit()
        logger.info("Saved %s close for %s: %s", price.metal, price.date, price.price_per_gram)

    async def get_daily_price(self, metal: Metal, date: datetime.date) -> StoredDailyPrice | None:
        """Return the stored close for ``metal`` on ``date``, or None."""
        with _storage_errors("read daily close", metal):
            conn = self._db.connection
            cursor = await conn.execute(
                f"SELECT {_DAILY_COLUMNS} FROM daily_prices WHERE metal = ? AND date = ?",  # noqa: S608
                (metal.value, date.isoformat()),
            )
            row = await cursor.fetchone()
        return _row_to_daily_price(row) if row is not None else None

    async def get_latest_close_before(
        self,
        metal: Metal,
        date: datetime.date,
    ) -> StoredDailyPrice | None:
        """Return the most recent stored close strictly before ``date``."""
        with _storage_errors("read daily close", metal):
            conn = self._db.connection
            cursor = await conn.execute(
                f"SELECT {_DAILY_COLUMNS} FROM daily_prices "  # noqa: S608
                "WHERE metal = ? AND date < ? ORDER BY date DESC LIMIT 1",
                (metal.value, date.isoformat()),
            )
            row = await cursor.fetchone()
        return _row_to_daily_price(row) if row is not None else None

    async def list_daily_prices(self, metal: Metal, *, limit: int = 30) -> list[StoredDailyPrice]:
        """Return up to ``limit`` most recent closes, oldest first."""
        with _storage_errors("list daily closes", metal):
            conn = self._db.connection
            cursor = await conn.execute(
                f"SELECT {_DAILY_COLUMNS} FROM daily_prices "  # noqa: S608
                "WHERE metal = ? ORDER BY date DESC LIMIT ?",
                (metal.value, limit),
            )
            rows = await cursor.fetchall()
        return [_row_to_daily_price(row) for row in reversed(list(rows))]


# ---------------------------------------------------------------------------
# Row mapping helpers
# ---------------------------------------------------------------------------

_DAILY_COLUMNS = (
    "metal, date, price_per_gram, price_per_kilogram, benchmark_quote, "
    "exchange_rate, source, timestamp"
)


def _row_to_daily_price(row: sqlite3.Row | tuple[str, ...]) -> StoredDailyPrice:
    """Convert a daily_prices row to a StoredDailyPrice."""
    return StoredDailyPrice(
        metal=Metal(row[0]),
        date=datetime.date.fromisoformat(row[1]),
        price_per_gram=Decimal(row[2]),
        price_per_kilogram=Decimal(row[3]),
        benchmark_quote=Decimal(row[4]),
        exchange_rate=Decimal(row[5]),
        source=row[6],
        timestamp=datetime.datetime.fromisoformat(row[7]),
    )
