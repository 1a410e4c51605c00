"""In-memory document store."""

import copy
from typing import Any

from eventlottery.store.base import (
    BaseDocumentStore,
    DocumentChange,
    DocumentSnapshot,
    Write,
    apply_write,
    matches,
)


class InMemoryDocumentStore(BaseDocumentStore):
    """Dict-backed document store for development and testing.

    Batches are validated in full before anything is applied, so a failing
    write leaves every document untouched. No durability: data is lost when
    the process exits.
    """

    def __init__(self) -> None:
        super().__init__()
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}

    def _snapshot(self, collection: str, document_id: str) -> DocumentSnapshot:
        data = self._collections.get(collection, {}).get(document_id)
        return DocumentSnapshot(collection, document_id, copy.deepcopy(data))

    async def _commit(self, writes: list[Write]) -> list[DocumentChange]:
        # Stage every write first so a precondition failure aborts the whole batch
        staged: dict[tuple[str, str], dict[str, Any] | None] = {}
        originals: dict[tuple[str, str], dict[str, Any] | None] = {}
        for write in writes:
            key = (write.collection, write.document_id)
            if key not in staged:
                current = self._collections.get(write.collection, {}).get(write.document_id)
                originals[key] = copy.deepcopy(current)
                staged[key] = current
            staged[key] = apply_write(staged[key], write)

        changes = []
        for (collection, document_id), data in staged.items():
            documents = self._collections.setdefault(collection, {})
            if data is None:
                documents.pop(document_id, None)
            else:
                documents[document_id] = data
            before = originals[(collection, document_id)]
            if before is None and data is None:
                continue
            changes.append(
                DocumentChange(
                    before=DocumentSnapshot(collection, document_id, before),
                    after=DocumentSnapshot(collection, document_id, copy.deepcopy(data)),
                )
            )
        return changes

    async def get(self, collection: str, document_id: str) -> DocumentSnapshot:
        return self._snapshot(collection, document_id)

    async def get_all(
        self,
        collection: str,
        document_ids: list[str],
        field_mask: list[str] | None = None,
    ) -> list[DocumentSnapshot]:
        return [self._snapshot(collection, doc_id).masked(field_mask) for doc_id in document_ids]

    async def query(self, collection: str, filters: dict[str, Any]) -> list[DocumentSnapshot]:
        return [
            self._snapshot(collection, doc_id)
            for doc_id, data in self._collections.get(collection, {}).items()
            if matches(data, filters)
        ]

    async def list_documents(self, collection: str) -> list[DocumentSnapshot]:
        return [
            self._snapshot(collection, doc_id) for doc_id in self._collections.get(collection, {})
        ]

    def count(self, collection: str) -> int:
        return len(self._collections.get(collection, {}))
