"""Document store contract and implementations."""

from eventlottery.store.base import (
    EVENTS,
    INVITATIONS,
    NOTIFICATIONS,
    USER_NOTIFICATIONS,
    USERS,
    DocumentChange,
    DocumentSnapshot,
    DocumentStore,
    WriteBatch,
)
from eventlottery.store.inmemory import InMemoryDocumentStore
from eventlottery.store.redis_store import RedisDocumentStore

__all__ = [
    "EVENTS",
    "INVITATIONS",
    "NOTIFICATIONS",
    "USER_NOTIFICATIONS",
    "USERS",
    "DocumentChange",
    "DocumentSnapshot",
    "DocumentStore",
    "WriteBatch",
    "InMemoryDocumentStore",
    "RedisDocumentStore",
]
