"""Client-side reconciliation of intraday extremes.

Independent server processes may each hold their own (stale or freshly
reset) extremes record, so a polling client can see today's high go down or
today's low go up between two responses. The reconciler keeps a running
best high and best low across every response it has seen, so the values
shown to the user are monotonic within one local day even when the server
side is not. It compensates for the server store; it does not replace it.

Merging is idempotent: feeding the same response twice leaves the view
unchanged, because ties always keep the value (and timestamp) already held.
"""

from __future__ import annotations

import datetime
import logging
from decimal import Decimal
from pathlib import Path
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from Bullion_Rate.models.api import PriceResponse
from Bullion_Rate.models.extremes import ClientExtremesView, ExtremePoint
from Bullion_Rate.utils.clock import Clock, utc_now

logger = logging.getLogger(__name__)


class ClientExtremesStore:
    """Persist a ClientExtremesView as JSON so it survives client restarts."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def load(self) -> ClientExtremesView | None:
        """Return the saved view, or None if absent or unreadable."""
        if not self._path.exists():
            return None
        try:
            return ClientExtremesView.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            logger.warning("Ignoring unreadable client extremes at %s: %s", self._path, exc)
            return None

    def save(self, view: ClientExtremesView) -> None:
        """Write the view; failures are logged, never raised."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(view.model_dump_json(), encoding="utf-8")
        except OSError as exc:
            logger.warning("Could not persist client extremes to %s: %s", self._path, exc)


def _best(
    candidates: list[ExtremePoint],
    *,
    highest: bool,
) -> ExtremePoint:
    """Pick the highest (or lowest) candidate; the earliest listed wins ties."""
    best = candidates[0]
    for candidate in candidates[1:]:
        if (highest and candidate.value > best.value) or (
            not highest and candidate.value < best.value
        ):
            best = candidate
    return best


class ExtremesReconciler:
    """Merge server responses into a monotonic per-day ClientExtremesView.

    Usage::

        reconciler = ExtremesReconciler(timezone=ZoneInfo("Asia/Kolkata"))
        view = reconciler.merge(price_response)
        render(view.best_high.value, view.best_low.value)
    """

    def __init__(
        self,
        *,
        timezone: ZoneInfo,
        clock: Clock = utc_now,
        store: ClientExtremesStore | None = None,
    ) -> None:
        self._timezone = timezone
        self._clock = clock
        self._store = store
        self._view: ClientExtremesView | None = store.load() if store is not None else None

    @property
    def view(self) -> ClientExtremesView | None:
        """The current merged view, or None before the first response."""
        return self._view

    def reset(self) -> None:
        """Forget everything seen so far."""
        self._view = None

    def merge(self, response: PriceResponse) -> ClientExtremesView:
        """Fold one server response into the view and return the result.

        ``best_high = max(previous best, server high, current price)`` and
        symmetrically for the low. Server values that are missing or not
        positive are ignored. The view restarts when the local day changes.
        """
        now = self._clock()
        today = now.astimezone(self._timezone).date()

        previous = self._view
        if previous is not None and previous.date != today:
            logger.info("Client extremes reset for new day %s (was %s)", today, previous.date)
            previous = None

        current = ExtremePoint(value=response.price_per_gram, observed_at=now)

        high_candidates: list[ExtremePoint] = []
        low_candidates: list[ExtremePoint] = []
        if previous is not None:
            high_candidates.append(previous.best_high)
            low_candidates.append(previous.best_low)

        server_high = _server_point(response.today_high, response.today_high_time, now)
        if server_high is not None:
            high_candidates.append(server_high)
        server_low = _server_point(response.today_low, response.today_low_time, now)
        if server_low is not None:
            low_candidates.append(server_low)

        high_candidates.append(current)
        low_candidates.append(current)

        merged = ClientExtremesView(
            date=today,
            best_high=_best(high_candidates, highest=True),
            best_low=_best(low_candidates, highest=False),
        )

        if (
            previous is not None
            and server_high is not None
            and server_high.value < previous.best_high.value
        ):
            logger.debug(
                "Server high %s below client best %s; keeping client value.",
                server_high.value,
                previous.best_high.value,
            )

        if merged != self._view:
            self._view = merged
            if self._store is not None:
                self._store.save(merged)
        return merged


def _server_point(
    value: Decimal | None,
    observed_at: datetime.datetime | None,
    now: datetime.datetime,
) -> ExtremePoint | None:
    """Server-reported extreme as a candidate, or None if unusable."""
    if value is None or value <= 0:
        return None
    return ExtremePoint(value=value, observed_at=observed_at or now)
