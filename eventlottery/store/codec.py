"""JSON codec for document data.

Documents hold timestamps, which JSON cannot. They are tagged on the way
out and restored on the way in, so the same encoding serves both the Redis
store and trigger payloads.
"""

import json
from datetime import datetime
from typing import Any

_TIMESTAMP_TAG = "__timestamp__"


def encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return {_TIMESTAMP_TAG: value.isoformat()}
    if isinstance(value, dict):
        return {key: encode_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_value(item) for item in value]
    return value


def decode_value(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value) == {_TIMESTAMP_TAG}:
            return datetime.fromisoformat(value[_TIMESTAMP_TAG])
        return {key: decode_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [decode_value(item) for item in value]
    return value


def encode_document(data: dict[str, Any] | None) -> dict[str, Any] | None:
    """Make document data JSON-safe. ``None`` (no document) passes through."""
    if data is None:
        return None
    return encode_value(data)


def decode_document(data: dict[str, Any] | None) -> dict[str, Any] | None:
    if data is None:
        return None
    return decode_value(data)


def dumps(data: dict[str, Any]) -> str:
    return json.dumps(encode_document(data))


def loads(raw: str | bytes) -> dict[str, Any]:
    return decode_document(json.loads(raw))
