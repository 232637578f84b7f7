"""Health checks for the price pipeline's dependencies.

Checks the benchmark quote chain, the exchange-rate chain, and SQLite
availability. Each check runs independently with its own timeout so a single
dependency being down does not block the entire health report.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from typing import Final

from Bullion_Rate.data.database import Database
from Bullion_Rate.models.enums import Currency, Metal
from Bullion_Rate.models.health import HealthStatus
from Bullion_Rate.services.pricing import MarketDataFetcher
from Bullion_Rate.utils.exceptions import PriceEngineError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Timeouts for individual health checks (seconds)
UPSTREAM_CHECK_TIMEOUT: Final[float] = 20.0
SQLITE_CHECK_TIMEOUT: Final[float] = 5.0


class HealthService:
    """Check availability of all pipeline dependencies.

    Usage::

        health = HealthService(database=db, fetcher=fetcher, currency=Currency.INR)
        status = await health.check_all()
        if not status.benchmark_available:
            logger.warning("No benchmark provider reachable.")
    """

    def __init__(
        self,
        database: Database | None = None,
        fetcher: MarketDataFetcher | None = None,
        *,
        currency: Currency = Currency.INR,
    ) -> None:
        self._database = database
        self._fetcher = fetcher
        self._currency = currency

    async def check_all(self) -> HealthStatus:
        """Run all health checks concurrently and return a consolidated status."""
        benchmark, exchange_rate, sqlite = await asyncio.gather(
            self.check_benchmark(),
            self.check_exchange_rate(),
            self.check_database(),
        )

        status = HealthStatus(
            benchmark_available=benchmark,
            exchange_rate_available=exchange_rate,
            sqlite_available=sqlite,
            last_check=datetime.datetime.now(datetime.UTC),
        )

        logger.info(
            "Health check complete: benchmark=%s exchange_rate=%s sqlite=%s",
            status.benchmark_available,
            status.exchange_rate_available,
            status.sqlite_available,
        )
        return status

    async def check_benchmark(self) -> bool:
        """Return True if any quote provider yields a plausible silver quote."""
        if self._fetcher is None:
            return False
        try:
            await asyncio.wait_for(
                self._fetcher.fetch_quote(Metal.SILVER),
                timeout=UPSTREAM_CHECK_TIMEOUT,
            )
        except TimeoutError:
            logger.warning("Benchmark health check timed out.")
            return False
        except PriceEngineError as exc:
            logger.warning("Benchmark health check failed: %s", exc)
            return False
        return True

    async def check_exchange_rate(self) -> bool:
        """Return True if any rate provider yields a plausible USD rate."""
        if self._fetcher is None:
            return False
        try:
            await asyncio.wait_for(
                self._fetcher.fetch_rate(Currency.USD, self._currency),
                timeout=UPSTREAM_CHECK_TIMEOUT,
            )
        except TimeoutError:
            logger.warning("Exchange-rate health check timed out.")
            return False
        except PriceEngineError as exc:
            logger.warning("Exchange-rate health check failed: %s", exc)
            return False
        return True

    async def check_database(self) -> bool:
        """Check that SQLite responds and migrations have been applied."""
        if self._database is None:
            logger.debug("No database configured for health check.")
            return False

        try:
            is_available: bool = await asyncio.wait_for(
                self._sqlite_check(),
                timeout=SQLITE_CHECK_TIMEOUT,
            )
            return is_available
        except TimeoutError:
            logger.warning("SQLite health check timed out.")
            return False
        except Exception:
            logger.warning("SQLite health check failed.", exc_info=True)
            return False

    async def _sqlite_check(self) -> bool:
        """Verify SQLite accessibility and migration status."""
        if self._database is None:
            return False

        pending = await self._database.pending_migrations()
        if pending:
            logger.warning(
                "SQLite reachable but %d migration(s) pending: %s",
                len(pending),
                ", ".join(m.path.name for m in pending),
            )
            return False

        logger.debug("SQLite check passed: schema up to date.")
        return True
