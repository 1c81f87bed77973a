"""Polling triggers for lifecycle operations.

A ``PollTimer`` arms three triggers at once: an absolute deadline, an
external cancellation event and a fixed polling interval. ``next()`` waits
for the earliest of them and reports which one fired. When several are due
at the same moment the deadline wins over cancellation, and cancellation
wins over the interval tick.
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
from enum import Enum


class Trigger(Enum):
    DEADLINE = "deadline"
    CANCELED = "canceled"
    TICK = "tick"


class PollTimer:
    """Deadline + cancellation + interval, armed when constructed.

    Args:
        interval: Seconds between ticks.
        timeout: Seconds until the deadline fires. None disables it.
        cancel: Event that signals external cancellation. None disables it.
    """

    def __init__(
        self,
        interval: float,
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> None:
        self._loop = asyncio.get_running_loop()
        self._interval = interval
        self._cancel = cancel
        self._deadline = self._loop.time() + timeout if timeout is not None else None

    @property
    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(self._deadline - self._loop.time(), 0.0)

    def _fired(self) -> Trigger:
        if self._deadline is not None and self._loop.time() >= self._deadline:
            return Trigger.DEADLINE
        if self._cancel is not None and self._cancel.is_set():
            return Trigger.CANCELED
        return Trigger.TICK

    async def next(self) -> Trigger:
        """Wait for the next trigger and return it."""
        while True:
            if (pending := self._fired()) is not Trigger.TICK:
                return pending

            delay = self._interval
            # Waiting only up to the deadline is not a full interval; such a
            # wakeup must not be reported as a tick.
            clipped = False
            if (remaining := self.remaining) is not None and remaining < delay:
                delay, clipped = remaining, True

            if self._cancel is None:
                await asyncio.sleep(delay)
            else:
                with suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(self._cancel.wait(), timeout=delay)

            fired = self._fired()
            if fired is not Trigger.TICK or not clipped:
                return fired
