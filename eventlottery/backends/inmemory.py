"""In-memory trigger backend using asyncio.Queue."""

import asyncio
import logging

from eventlottery.core.trigger import Trigger

logger = logging.getLogger("eventlottery.backends.inmemory")


class BackendFullError(Exception):
    """Raised when backend queue is full and cannot accept more triggers."""

    pass


class InMemoryBackend:
    """Async FIFO backend with redelivery on nack.

    Suitable for development and testing: triggers are lost if the process
    terminates. A nacked trigger goes to the back of the queue until it has
    been delivered `max_deliveries` times, then it is dead-lettered.

    Args:
        max_size: Maximum queue size. 0 means unbounded (default).
        max_deliveries: Delivery attempts before a nacked trigger is dead-lettered.
    """

    def __init__(self, max_size: int = 0, max_deliveries: int = 5) -> None:
        self._queue: asyncio.Queue[Trigger] = asyncio.Queue(maxsize=max_size)
        self._max_size = max_size
        self._max_deliveries = max_deliveries
        self._deliveries: dict[str, int] = {}
        self.dead_letters: list[tuple[Trigger, str]] = []

    async def enqueue(self, trigger: Trigger) -> None:
        """Store a trigger in FIFO order.

        Raises:
            BackendFullError: If queue is full (when max_size > 0).
        """
        if self._max_size > 0:
            try:
                self._queue.put_nowait(trigger)
            except asyncio.QueueFull:
                raise BackendFullError(
                    f"Queue full (max_size={self._max_size}), cannot enqueue trigger"
                )
        else:
            await self._queue.put(trigger)

    async def pull(self, timeout: float = 1.0) -> Trigger | None:
        try:
            trigger = await asyncio.wait_for(self._queue.get(), timeout)
        except TimeoutError:
            return None
        self._deliveries[trigger.id] = self._deliveries.get(trigger.id, 0) + 1
        return trigger

    async def ack(self, trigger: Trigger) -> None:
        self._deliveries.pop(trigger.id, None)

    async def nack(self, trigger: Trigger, reason: str = "Processing failed") -> None:
        attempts = self._deliveries.get(trigger.id, 0)
        if attempts >= self._max_deliveries:
            self._deliveries.pop(trigger.id, None)
            self.dead_letters.append((trigger, reason))
            logger.warning(
                f"Dead-lettered {trigger.trigger_type} after {attempts} deliveries: {reason}",
                extra={"trigger_id": trigger.id, "trigger_type": trigger.trigger_type},
            )
            return
        await self.enqueue(trigger)

    def delivery_count(self, trigger: Trigger) -> int:
        return self._deliveries.get(trigger.id, 0)

    def qsize(self) -> int:
        return self._queue.qsize()

    async def close(self) -> None:
        while not self._queue.empty():
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
        self._deliveries.clear()
