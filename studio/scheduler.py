"""
Debounced auto-render scheduling.

Every edit or cursor movement in any of the four section buffers restarts a
single shared countdown; the render callback fires only after a quiet period.
"""

from __future__ import annotations

import asyncio
import inspect
import math
from typing import Any, Callable, Optional

from api.shared.logger import get_logger

logger = get_logger(__name__)

DEFAULT_DELAY = 10.0


class DebounceScheduler:
    """Restartable one-shot timer with a countdown readout.

    Args:
        delay: Quiet period in seconds.
        callback: Called when the timer fires. Coroutine functions are
            scheduled as tasks on the running loop.
        clock: Returns the current time in seconds. Defaults to the running
            loop's monotonic clock.
        call_later: ``(delay, fn) -> handle`` with a ``cancel()`` method.
            Defaults to the running loop's ``call_later``.
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[[], Any],
        clock: Optional[Callable[[], float]] = None,
        call_later: Optional[Callable[[float, Callable[[], None]], Any]] = None,
    ):
        self.delay = delay
        self._callback = callback
        self._clock = clock
        self._call_later = call_later
        self._handle = None
        self._tasks: set[asyncio.Task] = set()
        self.scheduled_fire_time: Optional[float] = None

    def _now(self) -> float:
        if self._clock is not None:
            return self._clock()
        return asyncio.get_running_loop().time()

    def _arm(self, delay: float, fn: Callable[[], None]):
        if self._call_later is not None:
            return self._call_later(delay, fn)
        return asyncio.get_running_loop().call_later(delay, fn)

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def on_activity(self) -> None:
        """Restart the countdown."""
        if self._handle is not None:
            self._handle.cancel()
        self.scheduled_fire_time = self._now() + self.delay
        self._handle = self._arm(self.delay, self._fire)

    def cancel(self) -> None:
        """Drop any pending fire."""
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self.scheduled_fire_time = None

    def remaining_seconds(self) -> Optional[int]:
        """Whole seconds until the pending fire, or None when unarmed."""
        if self.scheduled_fire_time is None:
            return None
        return math.ceil(self.scheduled_fire_time - self._now())

    def _fire(self) -> None:
        self._handle = None
        self.scheduled_fire_time = None
        result = self._callback()
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Scheduled render failed: %s", task.exception())

    async def drain(self) -> None:
        """Wait for callbacks already fired to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
