"""Push delivery gateway."""

from eventlottery.push.base import MulticastResult, PushGateway, PushMessage
from eventlottery.push.inmemory import InMemoryPushGateway

__all__ = ["MulticastResult", "PushGateway", "PushMessage", "InMemoryPushGateway"]
