"""Freshness cache for values that expire.

:class:`Fresh` wraps a refresh function (typically "request a token") and
keeps the last value it returned together with the instant that value
expires. :meth:`Fresh.get` is the only accessor:

- the first call runs the refresh function on the caller's thread and
  propagates its failure;
- while the cached value is fresh, calls return it without any I/O;
- once it is stale, exactly one refresh is attempted before it is exposed.

In auto-refresh mode every successful refresh schedules the next one on the
:class:`~freshtoken.cache.clock.Clock`, ahead of the value's expiry, so that
``get()`` almost never blocks. A failed background refresh keeps the previous
value, reports the failure, and schedules another attempt.

Values must expose ``expires_in``: a lifetime in seconds, or ``None`` for
values that never expire.
"""

from __future__ import annotations

import enum
import logging
import threading
from typing import Callable, Generic, NamedTuple, Optional, Protocol, TypeVar

from freshtoken.cache.clock import Clock, ScheduledTask
from freshtoken.models import RefreshSettings

logger = logging.getLogger(__name__)


class Expiring(Protocol):
    """Anything with a lifetime in seconds (``None`` = never expires)."""

    @property
    def expires_in(self) -> Optional[int]: ...


T = TypeVar("T", bound=Expiring)


class FreshState(str, enum.Enum):
    EMPTY = "empty"
    FRESH = "fresh"
    STALE = "stale"


class _Entry(NamedTuple):
    value: object
    fetched_at_ms: int
    expires_at_ms: Optional[int]


class Fresh(Generic[T]):
    """Cached value that refreshes itself before it expires.

    The cached ``(value, expiry)`` pair is replaced as a whole, so readers
    always see either the previous or the new pair. Refreshes are serialized:
    a caller that finds a refresh in flight waits for it and returns its
    result instead of issuing a second one.

    Args:
        refresher: Zero-argument callable producing a new value.
        clock: Time source and scheduler.
        settings: Refresh timing; defaults to :class:`RefreshSettings`.
        auto_refresh: Schedule background refreshes ahead of expiry. When
            ``False`` the cache is lazy and a failed refresh of a stale
            value propagates to the caller.
        on_failure: Called with the exception of every failed refresh that
            does not propagate to a caller.
        name: Label used in log messages.

    Example::

        fresh = Fresh(lambda: endpoint.request_token(request), SystemClock())
        token = fresh.get().access_token
    """

    def __init__(
        self,
        refresher: Callable[[], T],
        clock: Clock,
        settings: Optional[RefreshSettings] = None,
        auto_refresh: bool = True,
        on_failure: Optional[Callable[[Exception], None]] = None,
        name: str = "value",
    ) -> None:
        self._refresher = refresher
        self._clock = clock
        self._settings = settings or RefreshSettings()
        self._auto_refresh = auto_refresh
        self._on_failure = on_failure
        self._name = name

        self._entry: Optional[_Entry] = None
        self._refresh_lock = threading.Lock()
        self._schedule_lock = threading.Lock()
        self._pending: Optional[ScheduledTask] = None
        self._generation = 0
        self._cancelled = False
        self._failed_at_ms: Optional[int] = None
        self.last_error: Optional[Exception] = None

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def get(self) -> T:
        """Return the current value, refreshing it first if needed.

        Raises:
            Exception: Whatever the refresh function raised, when there is
                no value to fall back on (first access) or when the cache
                is lazy.
        """
        entry = self._entry
        if entry is not None and not self._is_stale(entry):
            return entry.value  # type: ignore[return-value]

        with self._refresh_lock:
            entry = self._entry
            if entry is None:
                return self._refresh_locked().value  # type: ignore[return-value]
            if not self._is_stale(entry):
                return entry.value  # type: ignore[return-value]
            if self._auto and self._attempted_since_expiry(entry):
                # A retry is already scheduled; serve the last known value.
                return entry.value  # type: ignore[return-value]
            try:
                return self._refresh_locked().value  # type: ignore[return-value]
            except Exception as exc:
                if not self._auto:
                    raise
                self._report_failure(exc)
                self._schedule_retry(entry)
                return entry.value  # type: ignore[return-value]

    def refresh(self) -> T:
        """Refresh now, on the caller's thread, and return the new value.

        Failures propagate; the previous value stays cached.
        """
        with self._refresh_lock:
            return self._refresh_locked().value  # type: ignore[return-value]

    def cancel(self) -> None:
        """Stop background refreshing. A refresh already running completes."""
        with self._schedule_lock:
            self._cancelled = True
            self._generation += 1
            if self._pending is not None:
                self._pending.cancel()
                self._pending = None

    @property
    def state(self) -> FreshState:
        entry = self._entry
        if entry is None:
            return FreshState.EMPTY
        return FreshState.STALE if self._is_stale(entry) else FreshState.FRESH

    @property
    def expires_at_millis(self) -> Optional[int]:
        """Expiry of the cached value, or ``None`` if empty or non-expiring."""
        entry = self._entry
        return entry.expires_at_ms if entry is not None else None

    @property
    def next_refresh(self) -> Optional[ScheduledTask]:
        """The pending background refresh, if any."""
        return self._pending

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    @property
    def _auto(self) -> bool:
        return self._auto_refresh and not self._cancelled

    def _is_stale(self, entry: _Entry) -> bool:
        return entry.expires_at_ms is not None and self._clock.now_millis() >= entry.expires_at_ms

    def _attempted_since_expiry(self, entry: _Entry) -> bool:
        return (
            self._failed_at_ms is not None
            and entry.expires_at_ms is not None
            and self._failed_at_ms >= entry.expires_at_ms
        )

    def _refresh_locked(self) -> _Entry:
        """Fetch a new value and swap it in. Caller holds ``_refresh_lock``."""
        logger.debug("Refreshing %s", self._name)
        value = self._refresher()

        # Expiry counts from completion, not from when the refresh was scheduled.
        now = self._clock.now_millis()
        expires_in = value.expires_in
        expires_at = None if expires_in is None else now + expires_in * 1000
        entry = _Entry(value, now, expires_at)
        self._entry = entry
        self._failed_at_ms = None
        self.last_error = None

        if expires_in is None:
            self._cancel_pending()
        else:
            self._schedule(self._settings.refresh_delay_ms(expires_in * 1000))
        return entry

    def _schedule(self, delay_ms: int) -> None:
        with self._schedule_lock:
            if not self._auto:
                return
            if self._pending is not None:
                self._pending.cancel()
            self._generation += 1
            generation = self._generation
            logger.debug("Next refresh of %s in %d ms", self._name, delay_ms)
            self._pending = self._clock.schedule(
                lambda: self._background_refresh(generation), delay_ms
            )

    def _cancel_pending(self) -> None:
        with self._schedule_lock:
            self._generation += 1
            if self._pending is not None:
                self._pending.cancel()
                self._pending = None

    def _schedule_retry(self, entry: _Entry) -> None:
        if entry.expires_at_ms is None:
            return
        remaining = entry.expires_at_ms - self._clock.now_millis()
        self._schedule(self._settings.refresh_delay_ms(remaining))

    def _background_refresh(self, generation: int) -> None:
        with self._refresh_lock:
            if generation != self._generation or not self._auto:
                return
            try:
                self._refresh_locked()
            except Exception as exc:
                self._report_failure(exc)
                if self._entry is not None:
                    self._schedule_retry(self._entry)

    def _report_failure(self, exc: Exception) -> None:
        self._failed_at_ms = self._clock.now_millis()
        self.last_error = exc
        logger.warning("Refresh of %s failed, keeping previous value: %s", self._name, exc)
        if self._on_failure is not None:
            try:
                self._on_failure(exc)
            except Exception:
                logger.exception("on_failure callback for %s raised", self._name)
