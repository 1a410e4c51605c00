"""Redis-backed document store.

Each document is one JSON string at ``{prefix}:{collection}:{id}``; a set at
``{prefix}:{collection}`` indexes the ids of a collection. Commits run as a
WATCH/MULTI transaction over every key they touch, so a batch applies
atomically and a concurrent writer forces a retry rather than a lost update.
"""

import logging
from typing import Any

from eventlottery.backends.redis_backend import sanitize_url
from eventlottery.store import codec
from eventlottery.store.base import (
    BaseDocumentStore,
    DocumentChange,
    DocumentSnapshot,
    Write,
    apply_write,
    matches,
)

logger = logging.getLogger("eventlottery.store.redis")


class RedisDocumentStore(BaseDocumentStore):
    """Document store on top of redis.asyncio."""

    def __init__(self, redis_url: str, prefix: str = "eventlottery") -> None:
        super().__init__()
        self._url = redis_url
        self._prefix = prefix
        self._redis: Any = None

    async def _get_client(self) -> Any:
        if self._redis is None:
            from redis.asyncio import Redis

            self._redis = Redis.from_url(self._url, decode_responses=True)
            logger.info(f"Connected document store to Redis at {sanitize_url(self._url)}")
        return self._redis

    def _doc_key(self, collection: str, document_id: str) -> str:
        return f"{self._prefix}:{collection}:{document_id}"

    def _index_key(self, collection: str) -> str:
        return f"{self._prefix}:{collection}"

    async def _commit(self, writes: list[Write]) -> list[DocumentChange]:
        redis = await self._get_client()
        keys = {(w.collection, w.document_id): self._doc_key(w.collection, w.document_id)
                for w in writes}
        changes: list[DocumentChange] = []

        async def apply(pipe: Any) -> None:
            changes.clear()
            originals: dict[tuple[str, str], dict[str, Any] | None] = {}
            for key, redis_key in keys.items():
                raw = await pipe.get(redis_key)
                originals[key] = codec.loads(raw) if raw is not None else None

            staged = dict(originals)
            for write in writes:
                key = (write.collection, write.document_id)
                staged[key] = apply_write(staged[key], write)

            pipe.multi()
            for (collection, document_id), data in staged.items():
                redis_key = keys[(collection, document_id)]
                if data is None:
                    pipe.delete(redis_key)
                    pipe.srem(self._index_key(collection), document_id)
                else:
                    pipe.set(redis_key, codec.dumps(data))
                    pipe.sadd(self._index_key(collection), document_id)
                before = originals[(collection, document_id)]
                if before is None and data is None:
                    continue
                changes.append(
                    DocumentChange(
                        before=DocumentSnapshot(collection, document_id, before),
                        after=DocumentSnapshot(collection, document_id, data),
                    )
                )

        await redis.transaction(apply, *keys.values())
        return list(changes)

    async def get(self, collection: str, document_id: str) -> DocumentSnapshot:
        redis = await self._get_client()
        raw = await redis.get(self._doc_key(collection, document_id))
        return DocumentSnapshot(
            collection, document_id, codec.loads(raw) if raw is not None else None
        )

    async def get_all(
        self,
        collection: str,
        document_ids: list[str],
        field_mask: list[str] | None = None,
    ) -> list[DocumentSnapshot]:
        if not document_ids:
            return []
        redis = await self._get_client()
        raws = await redis.mget([self._doc_key(collection, doc_id) for doc_id in document_ids])
        return [
            DocumentSnapshot(
                collection, doc_id, codec.loads(raw) if raw is not None else None
            ).masked(field_mask)
            for doc_id, raw in zip(document_ids, raws)
        ]

    async def list_documents(self, collection: str) -> list[DocumentSnapshot]:
        redis = await self._get_client()
        ids = sorted(await redis.smembers(self._index_key(collection)))
        return [snap for snap in await self.get_all(collection, ids) if snap.exists]

    async def query(self, collection: str, filters: dict[str, Any]) -> list[DocumentSnapshot]:
        return [
            snap
            for snap in await self.list_documents(collection)
            if matches(snap.data, filters)
        ]

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    async def flush(self) -> None:
        """Delete every key under this store's prefix (for testing)."""
        redis = await self._get_client()
        keys = [key async for key in redis.scan_iter(match=f"{self._prefix}:*")]
        if keys:
            await redis.delete(*keys)
