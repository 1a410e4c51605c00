"""Trigger queue backends."""

from eventlottery.backends.base import TriggerBackend
from eventlottery.backends.inmemory import BackendFullError, InMemoryBackend
from eventlottery.backends.redis_backend import RedisBackend

__all__ = ["TriggerBackend", "BackendFullError", "InMemoryBackend", "RedisBackend"]
