"""Deferred task scheduler contract.

A deferred task asks an external service to call an HTTP target with a
payload at a given time. The service hands back an opaque handle that can
cancel the task while it is still outstanding.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class HttpTarget:
    url: str
    method: str = "POST"
    headers: dict[str, str] = field(default_factory=lambda: {"Content-Type": "application/json"})


@dataclass(frozen=True)
class ScheduledTask:
    handle: str
    queue: str
    target: HttpTarget
    payload: dict[str, Any]
    schedule_time: datetime


TaskDelivery = Callable[[ScheduledTask], Awaitable[None]]


class TaskScheduler(Protocol):
    """Protocol every deferred task scheduler implements."""

    async def create(
        self,
        queue: str,
        target: HttpTarget,
        payload: dict[str, Any],
        schedule_time: datetime,
    ) -> str:
        """Schedule a task and return its handle.

        Raises:
            TaskSchedulingError: If the service rejects the task, e.g. because
                ``schedule_time`` is beyond its maximum lead time.
        """
        ...

    async def delete(self, handle: str) -> None:
        """Cancel an outstanding task.

        Raises:
            TaskNotFoundError: If the handle is unknown or already fired.
        """
        ...


class DeliveringTaskScheduler(TaskScheduler, Protocol):
    """A scheduler that delivers its own due tasks in-process."""

    def set_delivery(self, deliver: TaskDelivery) -> None: ...

    async def fire_due(self, now: datetime | None = None) -> int:
        """Deliver every task scheduled at or before ``now``; return how many."""
        ...


class ManualClock:
    """A clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> datetime:
        self.now += delta
        return self.now
