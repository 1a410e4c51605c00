"""Redis Streams trigger backend.

Triggers are appended with XADD and consumed through a consumer group
(XREADGROUP/XACK). A nacked trigger stays pending and is reclaimed with
XCLAIM once idle; after `max_deliveries` attempts it moves to a dead-letter
stream together with the reason given by its last nack.
"""

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlparse, urlunparse
from uuid import uuid4

from redis.exceptions import ResponseError

from eventlottery.core.trigger import Trigger

logger = logging.getLogger("eventlottery.backends.redis")


def sanitize_url(url: str) -> str:
    """Mask password in Redis URL for logging."""
    try:
        parsed = urlparse(url)
        if parsed.password:
            netloc = f"{parsed.username or ''}:****@{parsed.hostname}"
            if parsed.port:
                netloc += f":{parsed.port}"
            return urlunparse(
                (parsed.scheme, netloc, parsed.path, parsed.params, parsed.query, parsed.fragment)
            )
        return f"{parsed.hostname}:{parsed.port or 6379}"
    except ValueError:
        return "<url>"


class RedisBackend:
    """Redis Streams backend with consumer groups."""

    def __init__(
        self,
        redis_url: str,
        stream_key: str = "eventlottery:triggers",
        consumer_group: str = "eventlottery",
        consumer_name: str | None = None,
        max_deliveries: int = 5,
        claim_min_idle_ms: int = 30000,
        dlq_stream: str | None = None,
    ) -> None:
        """Initialize Redis backend.

        Args:
            redis_url: Redis connection URL.
            stream_key: Stream key for triggers.
            consumer_group: Consumer group name.
            consumer_name: Unique consumer name (auto-generated if None).
            max_deliveries: Delivery attempts before a trigger is dead-lettered.
            claim_min_idle_ms: Min idle time before reclaiming a pending trigger.
            dlq_stream: Dead letter stream (default: {stream_key}:dlq).
        """
        self._url = redis_url
        self._url_safe = sanitize_url(redis_url)
        self.stream_key = stream_key
        self.consumer_group = consumer_group
        self.consumer_name = consumer_name or f"consumer-{uuid4().hex[:8]}"
        self._max_deliveries = max_deliveries
        self._claim_min_idle_ms = claim_min_idle_ms
        self.dlq_stream = dlq_stream or f"{stream_key}:dlq"
        # stream message id -> last nack reason, copied into the dead letter
        self._reasons_key = f"{stream_key}:reasons"

        self._redis: Any = None
        self._group_created = False
        # trigger.id -> stream message id, needed by ack/nack
        self._message_ids: dict[str, str] = {}
        self._conn_lock = asyncio.Lock()

    async def _get_client(self) -> Any:
        from redis.asyncio import Redis

        async with self._conn_lock:
            if self._redis is None:
                self._redis = Redis.from_url(self._url, decode_responses=True)
                logger.info(f"Connected to Redis at {self._url_safe}")
            return self._redis

    async def _ensure_consumer_group(self) -> None:
        if self._group_created:
            return

        redis = await self._get_client()
        try:
            await redis.xgroup_create(self.stream_key, self.consumer_group, id="0", mkstream=True)
            logger.info(f"Created consumer group '{self.consumer_group}' on '{self.stream_key}'")
        except ResponseError as e:
            # BUSYGROUP: another consumer created it first
            if "BUSYGROUP" not in str(e):
                raise
        self._group_created = True

    async def enqueue(self, trigger: Trigger) -> None:
        await self._ensure_consumer_group()
        redis = await self._get_client()
        await redis.xadd(self.stream_key, {"trigger": trigger.model_dump_json()})
        logger.debug(f"Enqueued {trigger.id} to {self.stream_key}")

    def _deserialize(
        self, message_id: str, fields: dict[str, str], track: bool = True
    ) -> Trigger | None:
        try:
            trigger = Trigger.model_validate_json(fields["trigger"])
        except (KeyError, ValueError) as e:
            logger.error(f"Failed to deserialize {message_id}: {e}")
            return None
        if track:
            self._message_ids[trigger.id] = message_id
        return trigger

    async def _reclaim_pending(self) -> Trigger | None:
        redis = await self._get_client()
        pending = await redis.xpending_range(
            self.stream_key, self.consumer_group, min="-", max="+", count=10
        )

        for entry in pending:
            message_id = entry["message_id"]
            if entry["time_since_delivered"] < self._claim_min_idle_ms:
                continue
            if entry["times_delivered"] >= self._max_deliveries:
                await self._dead_letter(message_id, entry["times_delivered"])
                continue

            claimed = await redis.xclaim(
                self.stream_key,
                self.consumer_group,
                self.consumer_name,
                min_idle_time=self._claim_min_idle_ms,
                message_ids=[message_id],
            )
            if claimed:
                return self._deserialize(*claimed[0])
        return None

    async def _dead_letter(self, message_id: str, deliveries: int) -> None:
        redis = await self._get_client()
        reason = await redis.hget(self._reasons_key, message_id)
        reason = reason or f"Exceeded {self._max_deliveries} delivery attempts"
        messages = await redis.xrange(self.stream_key, min=message_id, max=message_id)
        if messages:
            _, data = messages[0]
            await redis.xadd(
                self.dlq_stream,
                {
                    "original_id": message_id,
                    "trigger": data.get("trigger", "{}"),
                    "reason": reason,
                    "deliveries": str(deliveries),
                    "failed_at": datetime.now(UTC).isoformat(),
                },
            )
            logger.warning(
                f"Dead-lettered {message_id} after {deliveries} deliveries: {reason}"
            )
        await redis.xack(self.stream_key, self.consumer_group, message_id)
        await redis.hdel(self._reasons_key, message_id)

    async def dead_letters(self, count: int = 100) -> list[tuple[Trigger, str]]:
        """Read dead-lettered triggers with the last failure reason of each."""
        redis = await self._get_client()
        entries = await redis.xrange(self.dlq_stream, count=count)
        letters = []
        for message_id, fields in entries:
            trigger = self._deserialize(message_id, fields, track=False)
            if trigger is not None:
                letters.append((trigger, fields.get("reason", "")))
        return letters

    async def pull(self, timeout: float = 1.0) -> Trigger | None:
        await self._ensure_consumer_group()

        reclaimed = await self._reclaim_pending()
        if reclaimed is not None:
            return reclaimed

        redis = await self._get_client()
        response = await redis.xreadgroup(
            groupname=self.consumer_group,
            consumername=self.consumer_name,
            streams={self.stream_key: ">"},
            count=1,
            block=int(timeout * 1000),
        )
        if not response:
            return None

        _, messages = response[0]
        if not messages:
            return None
        return self._deserialize(*messages[0])

    async def ack(self, trigger: Trigger) -> None:
        message_id = self._message_ids.pop(trigger.id, None)
        if message_id is None:
            logger.warning(f"No message ID found for trigger {trigger.id}, cannot ack")
            return

        redis = await self._get_client()
        await redis.xack(self.stream_key, self.consumer_group, message_id)
        await redis.hdel(self._reasons_key, message_id)

    async def nack(self, trigger: Trigger, reason: str = "Processing failed") -> None:
        """Leave the trigger pending so it is reclaimed after `claim_min_idle_ms`."""
        message_id = self._message_ids.pop(trigger.id, None)
        logger.info(
            f"Trigger {trigger.id} left pending for redelivery: {reason}",
            extra={"trigger_id": trigger.id, "trigger_type": trigger.trigger_type},
        )
        if message_id is None:
            logger.warning(f"No message ID found for trigger {trigger.id}")
            return

        redis = await self._get_client()
        await redis.hset(self._reasons_key, message_id, reason)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("Closed Redis connection")

    async def delete_stream(self, stream_key: str | None = None) -> None:
        """Delete a stream and its nack reasons (for testing)."""
        redis = await self._get_client()
        key = stream_key or self.stream_key
        await redis.delete(key, f"{key}:reasons")
