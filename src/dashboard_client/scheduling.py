"""Timer scheduling for retry backoff and polling.

Every timer returns a TimerHandle that the owner must cancel on teardown.
Callbacks may be plain functions or return an awaitable, which is run as a
task on the event loop.
"""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Set

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Any]


class TimerHandle:
    """Disposable handle for a scheduled timer."""

    def __init__(self, on_cancel: Optional[Callable[[], None]] = None):
        self._on_cancel = on_cancel
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Cancel the timer. Safe to call more than once."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()
            self._on_cancel = None


class Scheduler(ABC):
    """Interface for scheduling one-shot and recurring timers."""

    @abstractmethod
    def call_later(self, delay_ms: float, callback: TimerCallback) -> TimerHandle:
        """Run callback once after delay_ms milliseconds.

        Args:
            delay_ms: Delay in milliseconds
            callback: Zero-argument callable, may return an awaitable

        Returns:
            Handle that cancels the timer
        """
        pass

    @abstractmethod
    def call_every(self, interval_ms: float, callback: TimerCallback) -> TimerHandle:
        """Run callback every interval_ms milliseconds until cancelled.

        Ticks are fixed-rate: the next tick is armed before the callback
        runs, never relative to its completion.

        Args:
            interval_ms: Interval in milliseconds
            callback: Zero-argument callable, may return an awaitable

        Returns:
            Handle that cancels the timer
        """
        pass


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self) -> None:
        self._tasks: Set["asyncio.Task[Any]"] = set()

    def _run_callback(self, loop: asyncio.AbstractEventLoop, callback: TimerCallback) -> None:
        try:
            result = callback()
        except Exception as e:
            logger.error(f"Timer callback failed: {e}")
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result, loop=loop)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: "asyncio.Task[Any]") -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Timer task failed: {error}")

    def call_later(self, delay_ms: float, callback: TimerCallback) -> TimerHandle:
        loop = asyncio.get_running_loop()
        handle: TimerHandle

        def _fire() -> None:
            if not handle.cancelled:
                self._run_callback(loop, callback)

        loop_handle = loop.call_later(max(0.0, delay_ms) / 1000.0, _fire)
        handle = TimerHandle(on_cancel=loop_handle.cancel)
        return handle

    def call_every(self, interval_ms: float, callback: TimerCallback) -> TimerHandle:
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive. Got: {interval_ms}")

        loop = asyncio.get_running_loop()
        interval = interval_ms / 1000.0
        start = loop.time()
        state = {"tick": 1, "loop_handle": None}
        handle = TimerHandle(on_cancel=lambda: state["loop_handle"].cancel())

        def _fire() -> None:
            if handle.cancelled:
                return
            state["tick"] += 1
            state["loop_handle"] = loop.call_at(start + state["tick"] * interval, _fire)
            self._run_callback(loop, callback)

        state["loop_handle"] = loop.call_at(start + interval, _fire)
        return handle

    async def drain(self) -> None:
        """Wait for callback tasks that are currently running."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
