"""SQLite connection and schema migrations for the price store.

One aiosqlite connection per process. WAL journaling lets several server
processes read the same file while one writes; ``busy_timeout`` makes a
blocked writer wait instead of failing immediately, which matters for the
last-write-wins extremes upserts.

Schema changes live in ``migrations/NNN_description.sql`` and are applied in
version order on connect.
"""

import datetime
import logging
from pathlib import Path
from types import TracebackType
from typing import NamedTuple

import aiosqlite

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"
MEMORY_PATH = ":memory:"

_CONNECTION_PRAGMAS: tuple[str, ...] = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA busy_timeout=5000",
)


class Migration(NamedTuple):
    """One numbered SQL migration file."""

    version: int
    path: Path


def discover_migrations(directory: Path = MIGRATIONS_DIR) -> list[Migration]:
    """Return the migration files in ``directory`` sorted by version."""
    migrations = [
        Migration(version=int(path.name.split("_", 1)[0]), path=path)
        for path in directory.glob("*.sql")
    ]
    return sorted(migrations)


class Database:
    """Shared aiosqlite connection for the cache, extremes and daily closes.

    Usage::

        async with Database("data/bullion.db") as db:
            repo = PriceRepository(db)
    """

    def __init__(self, db_path: str = "data/bullion.db") -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    @property
    def path(self) -> str:
        """Filesystem path of the database (or ``:memory:``)."""
        return self._db_path

    @property
    def connection(self) -> aiosqlite.Connection:
        """Return the open connection.

        Raises:
            RuntimeError: If ``connect()`` has not been called.
        """
        if self._connection is None:
            msg = "Database is not connected. Call connect() or use 'async with'."
            raise RuntimeError(msg)
        return self._connection

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    async def connect(self) -> None:
        """Open the file (creating its directory), set pragmas, migrate."""
        if self._db_path != MEMORY_PATH:
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._db_path)
        for pragma in _CONNECTION_PRAGMAS:
            await self._connection.execute(pragma)
        await self._run_migrations()
        logger.info("Price store opened: %s", self._db_path)

    async def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        if self._connection is None:
            return
        await self._connection.close()
        self._connection = None
        logger.info("Price store closed: %s", self._db_path)

    async def __aenter__(self) -> "Database":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def applied_versions(self) -> set[int]:
        """Versions recorded in ``schema_version``."""
        cursor = await self.connection.execute("SELECT version FROM schema_version")
        return {row[0] for row in await cursor.fetchall()}

    async def pending_migrations(self) -> list[Migration]:
        """Migrations on disk that this database has not applied yet."""
        applied = await self.applied_versions()
        return [m for m in discover_migrations() if m.version not in applied]

    async def _run_migrations(self) -> None:
        """Apply every pending migration in version order."""
        conn = self.connection
        await conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_version "
            "(version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)"
        )
        await conn.commit()

        pending = await self.pending_migrations()
        if not pending:
            logger.debug("Schema up to date.")
            return

        for migration in pending:
            logger.info("Applying migration %03d (%s)", migration.version, migration.path.name)
            # executescript() commits per statement; an unrecorded version is
            # retried on the next connect, so migration files stay idempotent.
            await conn.executescript(migration.path.read_text(encoding="utf-8"))
            await conn.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (migration.version, datetime.datetime.now(datetime.UTC).isoformat()),
            )
            await conn.commit()
