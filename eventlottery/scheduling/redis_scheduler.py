"""Redis-backed deferred task scheduler.

Outstanding tasks live in a sorted set scored by schedule time, with their
bodies in a hash. Firing removes a handle with ZREM before delivering it, so
when several processes pump the same queue each task is delivered once.
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from eventlottery.core.errors import TaskNotFoundError, TaskSchedulingError
from eventlottery.scheduling.base import Clock, HttpTarget, ScheduledTask, TaskDelivery, utcnow
from eventlottery.scheduling.inmemory import DEFAULT_MAX_LEAD

logger = logging.getLogger("eventlottery.scheduling.redis")


class RedisTaskScheduler:
    def __init__(
        self,
        redis_url: str,
        prefix: str = "eventlottery:tasks",
        deliver: TaskDelivery | None = None,
        max_lead: timedelta = DEFAULT_MAX_LEAD,
        clock: Clock = utcnow,
    ) -> None:
        self._url = redis_url
        self._schedule_key = prefix
        self._data_key = f"{prefix}:data"
        self._deliver = deliver
        self._max_lead = max_lead
        self._clock = clock
        self._redis: Any = None

    def set_delivery(self, deliver: TaskDelivery) -> None:
        self._deliver = deliver

    async def _get_client(self) -> Any:
        if self._redis is None:
            from redis.asyncio import Redis

            self._redis = Redis.from_url(self._url, decode_responses=True)
        return self._redis

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
        body = {
            "queue": queue,
            "target": {"url": target.url, "method": target.method, "headers": target.headers},
            "payload": payload,
            "scheduleTime": schedule_time.isoformat(),
        }

        redis = await self._get_client()
        async with redis.pipeline(transaction=True) as pipe:
            pipe.hset(self._data_key, handle, json.dumps(body))
            pipe.zadd(self._schedule_key, {handle: schedule_time.timestamp()})
            await pipe.execute()
        logger.debug(f"Created task {handle} for {schedule_time.isoformat()}")
        return handle

    async def delete(self, handle: str) -> None:
        redis = await self._get_client()
        removed = await redis.zrem(self._schedule_key, handle)
        await redis.hdel(self._data_key, handle)
        if not removed:
            raise TaskNotFoundError(handle)

    def _decode(self, handle: str, raw: str) -> ScheduledTask:
        body = json.loads(raw)
        target = body["target"]
        return ScheduledTask(
            handle=handle,
            queue=body["queue"],
            target=HttpTarget(target["url"], target["method"], target["headers"]),
            payload=body["payload"],
            schedule_time=datetime.fromisoformat(body["scheduleTime"]),
        )

    async def outstanding(self) -> list[ScheduledTask]:
        redis = await self._get_client()
        handles = await redis.zrange(self._schedule_key, 0, -1)
        if not handles:
            return []
        raws = await redis.hmget(self._data_key, handles)
        return [self._decode(h, raw) for h, raw in zip(handles, raws) if raw is not None]

    async def fire_due(self, now: datetime | None = None) -> int:
        """Deliver every task scheduled at or before ``now``; returns how many."""
        now = now or self._clock()
        redis = await self._get_client()
        handles = await redis.zrangebyscore(self._schedule_key, "-inf", now.timestamp())

        fired = 0
        for handle in handles:
            # Another pump may have taken it between ZRANGEBYSCORE and here
            if not await redis.zrem(self._schedule_key, handle):
                continue
            raw = await redis.hget(self._data_key, handle)
            await redis.hdel(self._data_key, handle)
            if raw is None:
                logger.warning(f"Task {handle} had no body, skipping")
                continue
            fired += 1
            if self._deliver is not None:
                await self._deliver(self._decode(handle, raw))
        return fired

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
