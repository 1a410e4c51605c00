"""Conversions between trigger payloads and the objects handlers need."""

from eventlottery.core.trigger import Trigger, written_trigger_type
from eventlottery.store.base import DocumentChange, DocumentSnapshot
from eventlottery.store.codec import decode_document, encode_document


def change_to_trigger(change: DocumentChange) -> Trigger:
    """Wrap a committed document write as a ``<collection>.written`` trigger."""
    return Trigger(
        trigger_type=written_trigger_type(change.collection),
        payload={
            "collection": change.collection,
            "documentId": change.document_id,
            "before": encode_document(change.before.data),
            "after": encode_document(change.after.data),
        },
    )


def change_from_trigger(trigger: Trigger) -> DocumentChange:
    payload = trigger.payload
    collection = payload["collection"]
    document_id = payload["documentId"]
    return DocumentChange(
        before=DocumentSnapshot(collection, document_id, decode_document(payload.get("before"))),
        after=DocumentSnapshot(collection, document_id, decode_document(payload.get("after"))),
    )

