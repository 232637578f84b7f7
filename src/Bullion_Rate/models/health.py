"""Health check model: system dependency availability status."""

import datetime

from pydantic import BaseModel, ConfigDict


class HealthStatus(BaseModel):
    """Status of the dependencies the price pipeline relies on.

    Used by the CLI and ``/api/health`` to report readiness.
    """

    model_config = ConfigDict(frozen=True)

    benchmark_available: bool
    exchange_rate_available: bool
    sqlite_available: bool
    last_check: datetime.datetime

    @property
    def healthy(self) -> bool:
        """True when every dependency is available."""
        return self.benchmark_available and self.exchange_rate_available and self.sqlite_available
