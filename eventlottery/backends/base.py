"""Backend protocol for trigger queuing.

ALL queue logic lives in backends, not the TriggerBus.
"""

from typing import Protocol

from eventlottery.core.trigger import Trigger


class TriggerBackend(Protocol):
    """Protocol defining the interface for trigger queue backends.

    Backends are responsible for:
    - Storing triggers (enqueue)
    - Handing out the next trigger (pull)
    - Forgetting a processed trigger (ack)
    - Taking a failed trigger back for redelivery (nack)
    """

    async def enqueue(self, trigger: Trigger) -> None:
        ...

    async def pull(self, timeout: float = 1.0) -> Trigger | None:
        """Retrieve the next trigger.

        Returns:
            The next Trigger, or None if timeout expires with nothing available.
        """
        ...

    async def ack(self, trigger: Trigger) -> None:
        ...

    async def nack(self, trigger: Trigger, reason: str = "Processing failed") -> None:
        """Return a trigger whose handling failed.

        Backends redeliver it until their delivery limit, then dead-letter it.
        """
        ...

    async def close(self) -> None:
        ...
