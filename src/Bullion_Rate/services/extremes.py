"""Daily extremes tracking: open, running high, and running low per local day.

The tracker is a two-state machine per (metal, currency):

- Absent, or holding a record for another day: the next price starts a new
  day with open = high = low = price.
- Tracking today: high only rises, low only falls, and the matching
  timestamp moves only when its bound does.

"Today" is the calendar date in the configured market timezone, not UTC.
The record lives in the durable store so it survives process restarts. The
read-compare-write cycle is not atomic across processes; the last write wins.
"""

from __future__ import annotations

import datetime
import logging
from decimal import Decimal
from typing import Protocol
from zoneinfo import ZoneInfo

from Bullion_Rate.models.enums import Currency, Metal
from Bullion_Rate.models.extremes import DailyExtremes
from Bullion_Rate.utils.clock import Clock, utc_now

logger = logging.getLogger(__name__)


class ExtremesStore(Protocol):
    """Durable storage for one extremes record per metal and currency."""

    async def get_extremes(self, metal: Metal, currency: Currency) -> DailyExtremes | None: ...

    async def save_extremes(
        self,
        metal: Metal,
        currency: Currency,
        extremes: DailyExtremes,
    ) -> None: ...


def advance_extremes(
    record: DailyExtremes | None,
    price: Decimal,
    *,
    now: datetime.datetime,
    today: datetime.date,
) -> DailyExtremes:
    """Return the extremes record after observing ``price`` at ``now``.

    A missing record, or one for any date other than ``today``, is fully
    replaced rather than merged.
    """
    if record is None or record.date != today:
        return DailyExtremes(
            date=today,
            open_price=price,
            high=price,
            high_at=now,
            low=price,
            low_at=now,
            last_updated_at=now,
        )

    high, high_at = record.high, record.high_at
    if price > high:
        high, high_at = price, now

    low, low_at = record.low, record.low_at
    if price < low:
        low, low_at = price, now

    return DailyExtremes(
        date=record.date,
        open_price=record.open_price,
        high=high,
        high_at=high_at,
        low=low,
        low_at=low_at,
        last_updated_at=now,
    )


class DailyExtremesTracker:
    """Maintain today's open/high/low in a durable store.

    Usage::

        tracker = DailyExtremesTracker(PriceRepository(db), timezone=ZoneInfo("Asia/Kolkata"))
        extremes = await tracker.update(Metal.SILVER, Currency.INR, Decimal("91.11"))

    Storage errors propagate as StorageFailureError; the price pipeline
    decides to serve the price without extremes.
    """

    def __init__(
        self,
        store: ExtremesStore,
        *,
        timezone: ZoneInfo,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._timezone = timezone
        self._clock = clock

    @property
    def timezone(self) -> ZoneInfo:
        return self._timezone

    def local_date(self, moment: datetime.datetime | None = None) -> datetime.date:
        """Calendar date of ``moment`` (default: now) in the market timezone."""
        return (moment or self._clock()).astimezone(self._timezone).date()

    async def current(self, metal: Metal, currency: Currency) -> DailyExtremes | None:
        """Return today's record, or None if nothing has been tracked today."""
        record = await self._store.get_extremes(metal, currency)
        if record is None or record.date != self.local_date():
            return None
        return record

    async def update(
        self,
        metal: Metal,
        currency: Currency,
        price: Decimal,
        *,
        now: datetime.datetime | None = None,
    ) -> DailyExtremes:
        """Fold ``price`` into the stored record and persist the result."""
        moment = now or self._clock()
        today = self.local_date(moment)

        record = await self._store.get_extremes(metal, currency)
        updated = advance_extremes(record, price, now=moment, today=today)

        if record is None or record.date != today:
            logger.info(
                "%s/%s extremes reset for %s: open=%s (previous day %s)",
                metal,
                currency,
                today,
                price,
                record.date if record is not None else "none",
            )
        elif updated.high != record.high or updated.low != record.low:
            logger.info(
                "%s/%s new intraday extreme: high=%s low=%s",
                metal,
                currency,
                updated.high,
                updated.low,
            )

        await self._store.save_extremes(metal, currency, updated)
        return updated
