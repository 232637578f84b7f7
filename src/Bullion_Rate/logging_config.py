"""Logging setup shared by the ``bullion-rate`` CLI and the web app."""

from __future__ import annotations

import logging
import os

LOG_FORMAT: str = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

# LOG_LEVEL_<AREA> env var -> logger name
_AREA_LOGGERS: dict[str, str] = {
    "ANALYSIS": "Bullion_Rate.analysis",
    "CLIENT": "Bullion_Rate.client",
    "DATA": "Bullion_Rate.data",
    "SERVICES": "Bullion_Rate.services",
    "WEB": "Bullion_Rate.web",
}

# Third-party loggers capped at WARNING. The request middleware replaces the
# uvicorn access log, and providers log their own outcome per httpx call.
_NOISY_LOGGERS: tuple[str, ...] = ("uvicorn.access", "httpx")


def _parse_level(name: str | None) -> int | None:
    """Map a level name such as ``"debug"`` to its number, or None if unknown."""
    if not name:
        return None
    resolved = logging.getLevelName(name.upper())
    return resolved if isinstance(resolved, int) else None


def configure_logging(
    *,
    level: str = "",
    verbose: bool = False,
    quiet: bool = False,
) -> None:
    """Configure the root logger.

    Root level priority: verbose > quiet > ``level`` > ``LOG_LEVEL`` > INFO.
    ``LOG_LEVEL_<AREA>`` (e.g. ``LOG_LEVEL_CLIENT=DEBUG``) then overrides one
    package area. ``force=True`` replaces any handler uvicorn installed first.
    """
    if verbose:
        effective = logging.DEBUG
    elif quiet:
        effective = logging.WARNING
    else:
        effective = _parse_level(level or os.environ.get("LOG_LEVEL")) or logging.INFO

    logging.basicConfig(level=effective, format=LOG_FORMAT, force=True)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    for area, logger_name in _AREA_LOGGERS.items():
        override = _parse_level(os.environ.get(f"LOG_LEVEL_{area}"))
        if override is not None:
            logging.getLogger(logger_name).setLevel(override)
