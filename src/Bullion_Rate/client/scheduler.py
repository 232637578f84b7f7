"""Visibility-aware poll scheduler.

State machine::

    IDLE --start()--> SCHEDULED <--set_visible()--> SUSPENDED
    any state --stop()--> STOPPED

The scheduler owns at most one asyncio.Task. While suspended no task exists
and no callback fires. Becoming visible starts a fresh task that fires once
immediately (if ``fetch_on_visible``) and then every ``interval_seconds``.
Ticks never overlap: a tick that finds the previous callback still running is
skipped. Callback failures are logged and polling continues, so a consumer
keeps showing its last known value.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import TypeAlias

from Bullion_Rate.models.enums import SchedulerState
from Bullion_Rate.utils.exceptions import SchedulingFailureError

logger = logging.getLogger(__name__)

PollCallback: TypeAlias = Callable[[], Awaitable[None]]


class PollScheduler:
    """Run ``callback`` periodically while the consumer is visible.

    Usage::

        scheduler = PollScheduler(live_client.refresh, interval_seconds=60)
        await scheduler.start()
        scheduler.set_visible(False)   # timer suspended, no calls
        scheduler.set_visible(True)    # one immediate call, then every 60s
        await scheduler.stop()         # no further calls, guaranteed
    """

    def __init__(
        self,
        callback: PollCallback,
        *,
        interval_seconds: float,
        fetch_on_mount: bool = True,
        fetch_on_visible: bool = True,
        enabled: bool = True,
        name: str = "poll",
    ) -> None:
        if interval_seconds <= 0:
            msg = f"interval_seconds must be positive, got {interval_seconds}"
            raise ValueError(msg)
        self._callback = callback
        self._interval = interval_seconds
        self._fetch_on_mount = fetch_on_mount
        self._fetch_on_visible = fetch_on_visible
        self._enabled = enabled
        self._name = name

        self._state = SchedulerState.IDLE
        self._visible = True
        self._task: asyncio.Task[None] | None = None
        self._in_flight = False
        self.invocations = 0
        self.last_error: SchedulingFailureError | None = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def visible(self) -> bool:
        return self._visible

    async def start(self, *, visible: bool | None = None) -> None:
        """Begin polling. Calling start() again is a no-op.

        ``visible`` defaults to the last value given to ``set_visible()``
        (True if it was never called).

        Raises:
            RuntimeError: If the scheduler was already stopped.
        """
        if self._state == SchedulerState.STOPPED:
            msg = "Cannot restart a stopped scheduler."
            raise RuntimeError(msg)
        if self._state != SchedulerState.IDLE:
            return

        if visible is not None:
            self._visible = visible
        if not self._enabled:
            logger.debug("%s scheduler disabled; not polling.", self._name)
            return

        if self._visible:
            self._schedule(immediate=self._fetch_on_mount)
        else:
            self._state = SchedulerState.SUSPENDED
            logger.debug("%s scheduler started hidden; suspended.", self._name)

    def set_visible(self, visible: bool) -> None:
        """Record a visibility change. Repeated identical events are ignored."""
        if visible == self._visible:
            return
        self._visible = visible

        if visible and self._state == SchedulerState.SUSPENDED:
            logger.debug("%s scheduler resumed.", self._name)
            self._schedule(immediate=self._fetch_on_visible)
        elif not visible and self._state == SchedulerState.SCHEDULED:
            self._cancel_task()
            self._state = SchedulerState.SUSPENDED
            logger.debug("%s scheduler suspended.", self._name)

    async def trigger(self) -> bool:
        """Run the callback now unless one is already in flight.

        Returns:
            True if the callback ran.
        """
        if self._state == SchedulerState.STOPPED:
            return False
        return await self._run_once()

    async def stop(self) -> None:
        """Stop polling and wait for the owned task to finish cancelling."""
        if self._state == SchedulerState.STOPPED:
            return
        self._state = SchedulerState.STOPPED
        task = self._task
        self._cancel_task()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.debug("%s scheduler stopped after %d invocations.", self._name, self.invocations)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _schedule(self, *, immediate: bool) -> None:
        """Replace any existing task with a fresh polling loop."""
        self._cancel_task()
        self._state = SchedulerState.SCHEDULED
        self._task = asyncio.create_task(self._loop(immediate=immediate), name=self._name)

    def _cancel_task(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _loop(self, *, immediate: bool) -> None:
        if immediate:
            await self._run_once()
        while True:
            await asyncio.sleep(self._interval)
            await self._run_once()

    async def _run_once(self) -> bool:
        """Invoke the callback, skipping if the previous one is still running."""
        if self._in_flight:
            logger.debug("%s tick skipped: previous call still running.", self._name)
            return False

        self._in_flight = True
        self.invocations += 1
        try:
            await self._callback()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.last_error = SchedulingFailureError(
                f"{self._name} callback failed: {exc}",
                instrument=self._name,
                source="scheduler",
            )
            logger.warning("%s", self.last_error)
        finally:
            self._in_flight = False
        return True
