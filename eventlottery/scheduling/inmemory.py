"""In-memory deferred task scheduler."""

import logging
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from eventlottery.core.errors import TaskNotFoundError, TaskSchedulingError
from eventlottery.scheduling.base import Clock, HttpTarget, ScheduledTask, TaskDelivery, utcnow

logger = logging.getLogger("eventlottery.scheduling.inmemory")

DEFAULT_MAX_LEAD = timedelta(days=30)


class InMemoryTaskScheduler:
    """Keeps tasks in a dict and fires them when asked.

    Nothing runs on its own: call `fire_due()` (from a test, or a loop in
    the application) to deliver every task whose time has come.

    Args:
        deliver: Called once per fired task.
        max_lead: Tasks further in the future than this are rejected.
        clock: Source of the current time.
    """

    def __init__(
        self,
        deliver: TaskDelivery | None = None,
        max_lead: timedelta = DEFAULT_MAX_LEAD,
        clock: Clock = utcnow,
    ) -> None:
        self._deliver = deliver
        self._max_lead = max_lead
        self._clock = clock
        self._tasks: dict[str, ScheduledTask] = {}
        self.created_count = 0
        self.deleted_count = 0

    def set_delivery(self, deliver: TaskDelivery) -> None:
        self._deliver = deliver

    async def create(
        self,
        queue: str,
        target: HttpTarget,
        payload: dict[str, Any],
        schedule_time: datetime,
    ) -> str:
        if schedule_time - self._clock() > self._max_lead:
            raise TaskSchedulingError(
                f"schedule time {schedule_time.isoformat()} is more than "
                f"{self._max_lead} in the future"
            )
        handle = f"{queue}/tasks/{uuid4().hex}"
        self._tasks[handle] = ScheduledTask(handle, queue, target, dict(payload), schedule_time)
        self.created_count += 1
        logger.debug(f"Created task {handle} for {schedule_time.isoformat()}")
        return handle

    async def delete(self, handle: str) -> None:
        if self._tasks.pop(handle, None) is None:
            raise TaskNotFoundError(handle)
        self.deleted_count += 1

    @property
    def outstanding(self) -> list[ScheduledTask]:
        return sorted(self._tasks.values(), key=lambda task: task.schedule_time)

    def get(self, handle: str) -> ScheduledTask | None:
        return self._tasks.get(handle)

    async def fire_due(self, now: datetime | None = None) -> int:
        """Deliver and forget every task scheduled at or before ``now``."""
        now = now or self._clock()
        due = [task for task in self.outstanding if task.schedule_time <= now]
        for task in due:
            del self._tasks[task.handle]
            if self._deliver is not None:
                await self._deliver(task)
        return len(due)
