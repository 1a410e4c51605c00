"""Document store contract.

The store is a collection/document database in the Firestore mould:
field-level reads, merge writes, conditional creates and updates, atomic
batches and equality queries. Every committed write is reported to the
store's write listeners as a DocumentChange, which is how document
triggers reach the trigger bus.
"""

import copy
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol
from uuid import uuid4

from eventlottery.core.errors import (
    DocumentExistsError,
    DocumentNotFoundError,
    PreconditionFailedError,
)

EVENTS = "events"
INVITATIONS = "invitations"
NOTIFICATIONS = "notifications"
USER_NOTIFICATIONS = "userNotifications"
USERS = "users"


def new_document_id() -> str:
    return uuid4().hex


@dataclass(frozen=True)
class DocumentSnapshot:
    """A read of one document. ``data`` is None when the document is missing."""

    collection: str
    id: str
    data: dict[str, Any] | None

    @property
    def exists(self) -> bool:
        return self.data is not None

    def get(self, field_name: str, default: Any = None) -> Any:
        if self.data is None:
            return default
        return self.data.get(field_name, default)

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self.data) if self.data is not None else {}

    def masked(self, fields: Iterable[str] | None) -> "DocumentSnapshot":
        """Project the snapshot onto ``fields``; missing fields stay missing."""
        if fields is None or self.data is None:
            return self
        keep = set(fields)
        return DocumentSnapshot(
            self.collection, self.id, {k: v for k, v in self.data.items() if k in keep}
        )


@dataclass(frozen=True)
class DocumentChange:
    """Before/after pair for one committed document write."""

    before: DocumentSnapshot
    after: DocumentSnapshot

    @property
    def collection(self) -> str:
        return self.after.collection

    @property
    def document_id(self) -> str:
        return self.after.id


WriteListener = Callable[[DocumentChange], Awaitable[None]]


class WriteOp(Enum):
    CREATE = "create"
    SET = "set"
    MERGE = "merge"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class Write:
    op: WriteOp
    collection: str
    document_id: str
    data: dict[str, Any] = field(default_factory=dict)
    # Fields that must not currently hold the given value for the write to apply.
    unless: dict[str, Any] = field(default_factory=dict)


def apply_write(current: dict[str, Any] | None, write: Write) -> dict[str, Any] | None:
    """Compute a document's new data, enforcing create/update preconditions.

    Raises:
        DocumentExistsError: CREATE on an existing document.
        DocumentNotFoundError: UPDATE on a missing document.
        PreconditionFailedError: UPDATE whose ``unless`` guard matches.
    """
    if write.op is WriteOp.CREATE:
        if current is not None:
            raise DocumentExistsError(write.collection, write.document_id)
        return copy.deepcopy(write.data)
    if write.op is WriteOp.SET:
        return copy.deepcopy(write.data)
    if write.op is WriteOp.UPDATE and current is None:
        raise DocumentNotFoundError(write.collection, write.document_id)
    if write.op is WriteOp.UPDATE:
        for name, refused in write.unless.items():
            if current.get(name) == refused:
                raise PreconditionFailedError(write.collection, write.document_id, name)
    if write.op in (WriteOp.MERGE, WriteOp.UPDATE):
        merged = copy.deepcopy(current) if current is not None else {}
        merged.update(copy.deepcopy(write.data))
        return merged
    return None


class WriteBatch:
    """Collects writes and commits them atomically: all apply or none do."""

    def __init__(self, store: "DocumentStore") -> None:
        self._store = store
        self._writes: list[Write] = []

    def create(self, collection: str, document_id: str, data: dict[str, Any]) -> "WriteBatch":
        self._writes.append(Write(WriteOp.CREATE, collection, document_id, data))
        return self

    def set(
        self, collection: str, document_id: str, data: dict[str, Any], merge: bool = False
    ) -> "WriteBatch":
        op = WriteOp.MERGE if merge else WriteOp.SET
        self._writes.append(Write(op, collection, document_id, data))
        return self

    def update(
        self,
        collection: str,
        document_id: str,
        data: dict[str, Any],
        unless: dict[str, Any] | None = None,
    ) -> "WriteBatch":
        self._writes.append(Write(WriteOp.UPDATE, collection, document_id, data, unless or {}))
        return self

    def delete(self, collection: str, document_id: str) -> "WriteBatch":
        self._writes.append(Write(WriteOp.DELETE, collection, document_id))
        return self

    def __len__(self) -> int:
        return len(self._writes)

    async def commit(self) -> list[DocumentChange]:
        if not self._writes:
            return []
        return await self._store.commit(self._writes)


class DocumentStore(Protocol):
    """Protocol every document store implements."""

    def new_id(self) -> str: ...

    def batch(self) -> WriteBatch: ...

    def add_write_listener(self, listener: WriteListener) -> None: ...

    async def commit(self, writes: list[Write]) -> list[DocumentChange]:
        """Apply writes atomically and notify write listeners."""
        ...

    async def get(self, collection: str, document_id: str) -> DocumentSnapshot: ...

    async def get_all(
        self,
        collection: str,
        document_ids: list[str],
        field_mask: list[str] | None = None,
    ) -> list[DocumentSnapshot]:
        """Read many documents in one round trip, in the order of ``document_ids``."""
        ...

    async def query(self, collection: str, filters: dict[str, Any]) -> list[DocumentSnapshot]:
        """Return documents whose fields equal every value in ``filters``."""
        ...

    async def list_documents(self, collection: str) -> list[DocumentSnapshot]: ...

    async def create(self, collection: str, document_id: str, data: dict[str, Any]) -> None: ...

    async def set(
        self, collection: str, document_id: str, data: dict[str, Any], merge: bool = False
    ) -> None: ...

    async def update(self, collection: str, document_id: str, data: dict[str, Any]) -> None: ...

    async def delete(self, collection: str, document_id: str) -> None: ...


def matches(data: dict[str, Any], filters: dict[str, Any]) -> bool:
    return all(name in data and data[name] == value for name, value in filters.items())


class BaseDocumentStore:
    """Single-document helpers and listener plumbing shared by stores.

    Subclasses implement ``_commit`` plus the read methods.
    """

    def __init__(self) -> None:
        self._listeners: list[WriteListener] = []

    def new_id(self) -> str:
        return new_document_id()

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    def add_write_listener(self, listener: WriteListener) -> None:
        self._listeners.append(listener)

    async def _commit(self, writes: list[Write]) -> list[DocumentChange]:
        raise NotImplementedError

    async def commit(self, writes: list[Write]) -> list[DocumentChange]:
        changes = await self._commit(writes)
        for change in changes:
            for listener in self._listeners:
                await listener(change)
        return changes

    async def create(self, collection: str, document_id: str, data: dict[str, Any]) -> None:
        await self.commit([Write(WriteOp.CREATE, collection, document_id, data)])

    async def set(
        self, collection: str, document_id: str, data: dict[str, Any], merge: bool = False
    ) -> None:
        op = WriteOp.MERGE if merge else WriteOp.SET
        await self.commit([Write(op, collection, document_id, data)])

    async def update(self, collection: str, document_id: str, data: dict[str, Any]) -> None:
        await self.commit([Write(WriteOp.UPDATE, collection, document_id, data)])

    async def delete(self, collection: str, document_id: str) -> None:
        await self.commit([Write(WriteOp.DELETE, collection, document_id)])
