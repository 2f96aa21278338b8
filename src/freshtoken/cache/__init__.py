"""Time-driven caching for freshtoken.

This package provides :class:`Fresh`, a cache that holds one expiring value
and refreshes it ahead of expiry, and the :class:`Clock` abstraction that
drives it. :class:`SystemClock` is the production clock; :class:`SettableClock`
gives tests control over time.
"""

from freshtoken.cache.clock import (
    Clock,
    ScheduledTask,
    SettableClock,
    SystemClock,
    TimerScheduler,
    get_default_scheduler,
    set_default_scheduler,
)
from freshtoken.cache.fresh import Fresh, FreshState

__all__ = [
    "Clock",
    "Fresh",
    "FreshState",
    "ScheduledTask",
    "SettableClock",
    "SystemClock",
    "TimerScheduler",
    "get_default_scheduler",
    "set_default_scheduler",
]
