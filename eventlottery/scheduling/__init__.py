"""Deferred task scheduling."""

from eventlottery.scheduling.base import (
    HttpTarget,
    ManualClock,
    ScheduledTask,
    TaskScheduler,
    utcnow,
)
from eventlottery.scheduling.inmemory import InMemoryTaskScheduler
from eventlottery.scheduling.redis_scheduler import RedisTaskScheduler
from eventlottery.scheduling.ticker import PeriodicTicker

__all__ = [
    "HttpTarget",
    "ManualClock",
    "ScheduledTask",
    "TaskScheduler",
    "utcnow",
    "InMemoryTaskScheduler",
    "RedisTaskScheduler",
    "PeriodicTicker",
]
