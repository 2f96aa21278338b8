"""Time and scheduling abstraction used by :class:`~freshtoken.cache.fresh.Fresh`.

A :class:`Clock` answers two questions: what time is it, and "run this
callback in N milliseconds". Production code uses :class:`SystemClock`,
which reads wall-clock time and hands callbacks to a process-wide
:class:`TimerScheduler`. Tests use :class:`SettableClock`, whose time only
moves when the test moves it.

Scheduled callbacks never run on the thread that scheduled them. The
default scheduler owns one daemon timer thread and a small worker pool; it
is created lazily on first use and lives until the process exits.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


class ScheduledTask:
    """Handle for a callback scheduled on a :class:`Clock`.

    :meth:`cancel` prevents a pending callback from running. Once the
    callback has started it can no longer be cancelled and :meth:`cancel`
    returns ``False``.
    """

    def __init__(self, callback: Callback, due_millis: int) -> None:
        self._callback = callback
        self.due_millis = due_millis
        self._lock = threading.Lock()
        self._cancelled = False
        self._started = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        """Whether the callback has started (or been cancelled)."""
        return self._started or self._cancelled

    def cancel(self) -> bool:
        """Cancel the callback if it has not started yet.

        Returns:
            ``True`` if this call prevented the callback from running.
        """
        with self._lock:
            if self._started or self._cancelled:
                return False
            self._cancelled = True
            return True

    def run(self) -> None:
        """Run the callback unless it was cancelled. Runs at most once."""
        with self._lock:
            if self._started or self._cancelled:
                return
            self._started = True
        try:
            self._callback()
        except Exception:
            logger.exception("Scheduled callback %r failed", self._callback)


class Clock(ABC):
    """Source of the current time and of delayed callbacks."""

    @abstractmethod
    def now_millis(self) -> int:
        """Return the current time in milliseconds since the epoch."""
        ...

    @abstractmethod
    def schedule(self, callback: Callback, delay_millis: int) -> ScheduledTask:
        """Run ``callback`` on a background thread after ``delay_millis``.

        Args:
            callback: Zero-argument callable. Exceptions it raises are logged.
            delay_millis: Delay in milliseconds; negative values mean "now".

        Returns:
            A :class:`ScheduledTask` that can cancel the pending callback.
        """
        ...


class TimerScheduler:
    """Shared background timer.

    One daemon thread sleeps until the earliest due task and hands it to a
    :class:`~concurrent.futures.ThreadPoolExecutor`, so a slow callback (a
    token request, typically) never delays the others.

    Cancelled tasks are dropped when they reach the head of the queue, and
    the whole queue is compacted whenever it has doubled in size since the
    last compaction.

    Args:
        max_workers: Size of the worker pool running callbacks.
    """

    PURGE_THRESHOLD = 64

    def __init__(self, max_workers: int = 4) -> None:
        self._condition = threading.Condition()
        self._queue: list[tuple[float, int, ScheduledTask]] = []
        self._sequence = itertools.count()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="freshtoken-refresh"
        )
        self._thread: Optional[threading.Thread] = None
        self._shutdown = False
        self._purge_at = self.PURGE_THRESHOLD

    def schedule(self, callback: Callback, delay_millis: float) -> ScheduledTask:
        """Queue ``callback`` to run after ``delay_millis`` of real time."""
        delay = max(0.0, delay_millis) / 1000.0
        due = time.monotonic() + delay
        task = ScheduledTask(callback, int(time.time() * 1000 + delay * 1000))
        with self._condition:
            if self._shutdown:
                raise RuntimeError("TimerScheduler has been shut down")
            self._purge_cancelled()
            heapq.heappush(self._queue, (due, next(self._sequence), task))
            self._ensure_thread()
            self._condition.notify()
        return task

    @property
    def queued(self) -> int:
        """Number of entries in the timer queue, cancelled ones included."""
        with self._condition:
            return len(self._queue)

    def shutdown(self, wait: bool = True) -> None:
        """Stop the timer thread and the worker pool. Pending tasks are dropped."""
        with self._condition:
            self._shutdown = True
            self._queue.clear()
            self._condition.notify()
        self._executor.shutdown(wait=wait)

    def _purge_cancelled(self) -> None:
        # Caller holds the condition. Scans only once the queue has doubled
        # since the last scan.
        if len(self._queue) < self._purge_at:
            return
        live = [entry for entry in self._queue if not entry[2].cancelled]
        if len(live) < len(self._queue):
            heapq.heapify(live)
            self._queue = live
        self._purge_at = max(self.PURGE_THRESHOLD, 2 * len(live))

    def _ensure_thread(self) -> None:
        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(
                target=self._run, name="freshtoken-timer", daemon=True
            )
            self._thread.start()

    def _run(self) -> None:
        while True:
            with self._condition:
                while not self._shutdown:
                    while self._queue and self._queue[0][2].cancelled:
                        heapq.heappop(self._queue)
                    if not self._queue:
                        self._condition.wait()
                        continue
                    due, _, task = self._queue[0]
                    remaining = due - time.monotonic()
                    if remaining <= 0:
                        heapq.heappop(self._queue)
                        break
                    self._condition.wait(remaining)
                if self._shutdown:
                    return
            if not task.done:
                self._executor.submit(task.run)


_default_scheduler: Optional[TimerScheduler] = None
_default_scheduler_lock = threading.Lock()


def get_default_scheduler() -> TimerScheduler:
    """Return the process-wide scheduler, creating it on first use."""
    global _default_scheduler
    if _default_scheduler is None:
        with _default_scheduler_lock:
            if _default_scheduler is None:
                _default_scheduler = TimerScheduler()
    return _default_scheduler


def set_default_scheduler(scheduler: Optional[TimerScheduler]) -> None:
    """Install ``scheduler`` as the process-wide scheduler.

    Passing ``None`` makes the next :func:`get_default_scheduler` call
    create a new one. The previous scheduler is not shut down.
    """
    global _default_scheduler
    with _default_scheduler_lock:
        _default_scheduler = scheduler


class SystemClock(Clock):
    """Wall-clock time with callbacks on a shared :class:`TimerScheduler`.

    Args:
        scheduler: Scheduler to use. Defaults to the process-wide one,
            resolved on every call so that :func:`set_default_scheduler`
            takes effect for existing clocks.
    """

    def __init__(self, scheduler: Optional[TimerScheduler] = None) -> None:
        self._scheduler = scheduler

    def now_millis(self) -> int:
        return int(time.time() * 1000)

    def schedule(self, callback: Callback, delay_millis: int) -> ScheduledTask:
        scheduler = self._scheduler or get_default_scheduler()
        return scheduler.schedule(callback, delay_millis)


class SettableClock(Clock):
    """Clock with simulated time, for tests.

    Time starts at ``start_millis`` and only changes through
    :meth:`set_millis` and :meth:`advance`.

    Without ``delay_scale``, scheduled callbacks are held until simulated
    time reaches their due time; :meth:`advance` then runs them in due-time
    order on the advancing thread. With ``delay_scale`` (e.g. ``0.001``),
    callbacks go to the real scheduler with their delay multiplied by the
    scale, so a 30 second refresh fires after 30 real milliseconds.

    Args:
        start_millis: Initial simulated time.
        delay_scale: Optional real-time compression factor for callbacks.
        scheduler: Scheduler used when ``delay_scale`` is set.
    """

    def __init__(
        self,
        start_millis: int = 0,
        delay_scale: Optional[float] = None,
        scheduler: Optional[TimerScheduler] = None,
    ) -> None:
        self._lock = threading.RLock()
        self._now = start_millis
        self._delay_scale = delay_scale
        self._scheduler = scheduler
        self._pending: list[tuple[int, int, ScheduledTask]] = []
        self._sequence = itertools.count()

    def now_millis(self) -> int:
        with self._lock:
            return self._now

    def set_millis(self, millis: int) -> None:
        """Jump to ``millis``, running any held callbacks that became due."""
        with self._lock:
            self._now = millis
        self._run_due()

    def advance(self, millis: int) -> None:
        """Move simulated time forward by ``millis``, running due callbacks."""
        with self._lock:
            self._now += millis
        self._run_due()

    @property
    def pending(self) -> list[ScheduledTask]:
        """Held callbacks that have not run or been cancelled, in due order."""
        with self._lock:
            return [task for _, _, task in sorted(self._pending) if not task.done]

    def schedule(self, callback: Callback, delay_millis: int) -> ScheduledTask:
        if self._delay_scale is not None:
            scheduler = self._scheduler or get_default_scheduler()
            task = scheduler.schedule(callback, delay_millis * self._delay_scale)
            task.due_millis = self.now_millis() + max(0, delay_millis)
            return task
        with self._lock:
            due = self._now + max(0, delay_millis)
            task = ScheduledTask(callback, due)
            heapq.heappush(self._pending, (due, next(self._sequence), task))
        return task

    def _run_due(self) -> None:
        while True:
            with self._lock:
                if not self._pending or self._pending[0][0] > self._now:
                    return
                _, _, task = heapq.heappop(self._pending)
            task.run()
