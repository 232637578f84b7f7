"""Injectable wall clock.

Components that compare timestamps (cache expiry, day rollover, client
reconciliation) take a ``Clock`` so tests can pin or advance time.
"""

import datetime
from collections.abc import Callable
from typing import TypeAlias

Clock: TypeAlias = Callable[[], datetime.datetime]


def utc_now() -> datetime.datetime:
    """Current time in UTC."""
    return datetime.datetime.now(datetime.UTC)
