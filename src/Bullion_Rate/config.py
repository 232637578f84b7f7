"""Application settings loaded from environment variables and ``.env``.

Every tunable the price pipeline reads lives here: provider endpoints and
credentials, cache TTL, markup rates, the local timezone that defines a
"calendar day", and the shared secret guarding scheduled invocations.
"""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from Bullion_Rate.models.enums import Currency


class Settings(BaseSettings):
    """Price engine settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # --- Storage ---
    database_path: str = Field(default="data/bullion.db", alias="DATABASE_PATH")

    # --- Pricing ---
    target_currency: Currency = Field(default=Currency.INR, alias="TARGET_CURRENCY")
    import_duty_rate: Decimal = Field(default=Decimal("0.06"), alias="IMPORT_DUTY_RATE", ge=0)
    tax_rate: Decimal = Field(default=Decimal("0.03"), alias="TAX_RATE", ge=0)
    premium_rate: Decimal = Field(default=Decimal("0.03"), alias="MARKET_PREMIUM_RATE", ge=0)
    market_timezone: str = Field(default="Asia/Kolkata", alias="MARKET_TIMEZONE")

    # --- Cache ---
    cache_ttl_seconds: int = Field(default=60, alias="CACHE_TTL_SECONDS", ge=1, le=3600)

    # --- Upstream providers ---
    provider_timeout_seconds: float = Field(
        default=8.0, alias="PROVIDER_TIMEOUT_SECONDS", gt=0, le=60
    )
    yahoo_chart_url: str = Field(
        default="https://query1.finance.yahoo.com/v8/finance/chart",
        alias="YAHOO_CHART_URL",
    )
    metalprice_api_url: str = Field(
        default="https://api.metalpriceapi.com/v1/latest",
        alias="METALPRICE_API_URL",
    )
    metalprice_api_key: str = Field(default="", alias="METALPRICE_API_KEY")
    goldapi_url: str = Field(default="https://www.goldapi.io/api", alias="GOLDAPI_URL")
    goldapi_key: str = Field(default="", alias="GOLDAPI_KEY")
    frankfurter_url: str = Field(
        default="https://api.frankfurter.app/latest",
        alias="FRANKFURTER_URL",
    )
    open_er_api_url: str = Field(
        default="https://open.er-api.com/v6/latest",
        alias="OPEN_ER_API_URL",
    )

    # --- Scheduled jobs ---
    cron_secret: str = Field(default="", alias="CRON_SECRET")

    # --- Client polling ---
    api_base_url: str = Field(default="http://127.0.0.1:8000", alias="API_BASE_URL")
    poll_interval_seconds: float = Field(default=60.0, alias="POLL_INTERVAL_SECONDS", gt=0)
    client_state_path: str = Field(
        default="data/client_extremes.json", alias="CLIENT_STATE_PATH"
    )

    @field_validator("market_timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Reject timezone identifiers the zoneinfo database does not know."""
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            msg = f"Unknown timezone: {value!r}"
            raise ValueError(msg) from exc
        return value

    @property
    def timezone(self) -> ZoneInfo:
        """The configured market timezone as a ZoneInfo."""
        return ZoneInfo(self.market_timezone)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide Settings, loaded once."""
    return Settings()
