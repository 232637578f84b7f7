"""Shared helpers for the HTTP provider modules.

Consolidates safe numeric conversion and the GET-and-decode pattern used by
every quote and exchange-rate provider.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Final

import httpx

from Bullion_Rate.utils.exceptions import ProviderError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Shared constants
# ---------------------------------------------------------------------------

# Yahoo rejects requests without a browser-like user agent
BROWSER_USER_AGENT: Final[str] = "Mozilla/5.0 (compatible; BullionRate/1.0)"

HTTP_TIMEOUT: Final[httpx.Timeout] = httpx.Timeout(connect=5.0, read=10.0, write=5.0, pool=5.0)
HTTP_LIMITS: Final[httpx.Limits] = httpx.Limits(max_connections=10, max_keepalive_connections=5)


def create_http_client() -> httpx.AsyncClient:
    """Return the AsyncClient shared by every provider in a process."""
    return httpx.AsyncClient(timeout=HTTP_TIMEOUT, limits=HTTP_LIMITS)


# ---------------------------------------------------------------------------
# Safe type conversions
# ---------------------------------------------------------------------------


def safe_decimal(value: object) -> Decimal | None:
    """Convert a JSON number to Decimal via string to preserve precision.

    Returns None for missing, boolean, NaN, infinite, or unparseable values
    so that callers treat them as "no data" rather than as zero.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


async def get_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    instrument: str,
    source: str,
    params: dict[str, str] | None = None,
    headers: dict[str, str] | None = None,
) -> Any:
    """GET ``url`` and decode the JSON body.

    Raises:
        ProviderError: On transport failure, a non-200 status, or a body
            that is not valid JSON.
    """
    try:
        response = await client.get(url, params=params, headers=headers)
    except httpx.HTTPError as exc:
        msg = f"{source} request failed: {exc}"
        raise ProviderError(msg, instrument=instrument, source=source) from exc

    if response.status_code != 200:  # noqa: PLR2004
        msg = f"{source} returned HTTP {response.status_code}."
        raise ProviderError(
            msg,
            instrument=instrument,
            source=source,
            http_status=response.status_code,
        )

    try:
        return response.json()
    except ValueError as exc:
        msg = f"{source} returned a non-JSON body."
        raise ProviderError(msg, instrument=instrument, source=source) from exc


def require_decimal(value: object, *, instrument: str, source: str, field: str) -> Decimal:
    """Convert a provider field to a positive Decimal or raise ProviderError."""
    result = safe_decimal(value)
    if result is None or result <= 0:
        msg = f"{source} returned no usable {field} (got {value!r})."
        raise ProviderError(msg, instrument=instrument, source=source)
    return result
