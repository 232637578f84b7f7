"""HTTP client that polls ``/api/price`` and reconciles today's extremes.

Pairs with PollScheduler: ``refresh`` is the poll callback. A failed refresh
raises, the scheduler logs it, and ``last_response`` / ``view`` keep the last
known good values.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Final, TypeAlias

import httpx
from pydantic import ValidationError

from Bullion_Rate.client.reconciliation import ExtremesReconciler
from Bullion_Rate.models.api import PriceResponse
from Bullion_Rate.models.enums import Metal
from Bullion_Rate.models.extremes import ClientExtremesView
from Bullion_Rate.utils.exceptions import UpstreamUnavailableError

logger = logging.getLogger(__name__)

CLIENT_SOURCE: Final[str] = "price-api"

UpdateListener: TypeAlias = Callable[[PriceResponse, ClientExtremesView], None]


class LivePriceClient:
    """Fetch the latest price for one metal and merge it into a client view.

    Usage::

        async with httpx.AsyncClient(base_url="http://127.0.0.1:8000") as http:
            live = LivePriceClient(http, metal=Metal.SILVER, reconciler=reconciler)
            scheduler = PollScheduler(live.refresh, interval_seconds=60)
            await scheduler.start()
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        metal: Metal,
        reconciler: ExtremesReconciler,
        on_update: UpdateListener | None = None,
    ) -> None:
        self._client = client
        self._metal = metal
        self._reconciler = reconciler
        self._on_update = on_update
        self.last_response: PriceResponse | None = None

    @property
    def view(self) -> ClientExtremesView | None:
        """Reconciled extremes; what a consumer should render."""
        return self._reconciler.view

    async def refresh(self) -> None:
        """Fetch, validate, and merge one price response.

        Raises:
            UpstreamUnavailableError: On transport failure, a non-200 status,
                or a body that is not a valid price payload.
        """
        try:
            response = await self._client.get("/api/price", params={"metal": self._metal.value})
        except httpx.HTTPError as exc:
            msg = f"Price API request failed: {exc}"
            raise UpstreamUnavailableError(
                msg, instrument=self._metal, source=CLIENT_SOURCE
            ) from exc

        if response.status_code != 200:  # noqa: PLR2004
            raise UpstreamUnavailableError(
                f"Price API returned HTTP {response.status_code}: {_error_message(response)}",
                instrument=self._metal,
                source=CLIENT_SOURCE,
                http_status=response.status_code,
            )

        try:
            payload = PriceResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            msg = f"Price API returned an invalid payload: {exc}"
            raise UpstreamUnavailableError(
                msg, instrument=self._metal, source=CLIENT_SOURCE
            ) from exc

        view = self._reconciler.merge(payload)
        self.last_response = payload
        logger.debug(
            "%s refreshed: %s %s/g (best high %s, best low %s)",
            self._metal,
            payload.price_per_gram,
            payload.currency,
            view.best_high.value,
            view.best_low.value,
        )
        if self._on_update is not None:
            self._on_update(payload, view)


def _error_message(response: httpx.Response) -> str:
    """Best-effort ``message`` from an ``{error, message}`` body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)
