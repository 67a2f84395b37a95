"""
Namma Kernel — Store Codec

Pure functions between the in-memory store and its durable JSON blob.

Blob layout:
    {"tasks": [{"id": "doc_...", "title": "...", "createdAt": {"seconds": ..., "nanoseconds": ...}}, ...],
     "notes": [...],
     ...}

Timestamp values are written as {seconds, nanoseconds} pairs and come back
as Timestamp instances. No IO here.
"""

from __future__ import annotations

import json
from typing import Any

from namma.kernel.types import KernelError, Timestamp

# Collection = {doc_id: document}, insertion ordered
Collections = dict[str, dict[str, dict[str, Any]]]


class SerializationError(KernelError):
    """The durable blob is unreadable or does not have the store layout."""

    pass


# ---------------------------------------------------------------------------
# Value encoding
# ---------------------------------------------------------------------------


def encode_value(value: Any) -> Any:
    if isinstance(value, Timestamp):
        return value.to_dict()
    if isinstance(value, dict):
        return {k: encode_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    return value


def decode_value(value: Any) -> Any:
    if Timestamp.is_encoded(value):
        return Timestamp.from_dict(value)
    if isinstance(value, dict):
        return {k: decode_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode_value(v) for v in value]
    return value


# ---------------------------------------------------------------------------
# Store encoding
# ---------------------------------------------------------------------------


def encode_store(collections: Collections) -> str:
    """Serialize every collection into one blob."""
    data = {name: [encode_value(d) for d in docs.values()] for name, docs in collections.items()}
    try:
        return json.dumps(data, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Store is not JSON-serializable: {e}") from e


def decode_store(blob: str) -> Collections:
    """
    Parse a blob back into collections.
    Raises SerializationError on anything that isn't the store layout.
    A later document with a duplicate id replaces the earlier one.
    """
    try:
        data = json.loads(blob)
    except (json.JSONDecodeError, TypeError) as e:
        raise SerializationError(f"Blob is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise SerializationError(f"Blob root must be an object, got {type(data).__name__}")

    collections: Collections = {}
    for name, docs in data.items():
        if not isinstance(docs, list):
            raise SerializationError(f"Collection '{name}' must be a list, got {type(docs).__name__}")
        coll: dict[str, dict[str, Any]] = {}
        for i, d in enumerate(docs):
            if not isinstance(d, dict):
                raise SerializationError(f"Document {name}[{i}] must be an object")
            doc_id = d.get("id")
            if not isinstance(doc_id, str) or not doc_id:
                raise SerializationError(f"Document {name}[{i}] has no string 'id'")
            coll[doc_id] = decode_value(d)
        collections[name] = coll

    return collections
