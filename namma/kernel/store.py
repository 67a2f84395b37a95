"""
Namma Kernel — Document Store

Sole owner of every collection. Loads the whole dataset from one durable
blob at open, writes the whole dataset back after every mutation, and only
then announces the change on the bus.

Ordering of a mutation:
  1. build the new collection on a copy
  2. encode the full store and await the durable write
  3. swap the new collection in
  4. emit "storage-update" with the collection name

If step 2 fails nothing is swapped in and nothing is emitted, so memory,
disk and listeners never disagree.

This is where IO happens. The query engine is pure.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import secrets
import time
from collections.abc import Callable
from typing import Any

from namma.config import settings
from namma.kernel.bus import EventBus
from namma.kernel.codec import Collections, SerializationError, decode_store, encode_store
from namma.kernel.storage import KeyValueStorage
from namma.kernel.types import DEFAULT_COLLECTIONS, STORE_CHANGED, KernelError

logger = logging.getLogger(__name__)


class StoreClosed(KernelError):
    """The store has been torn down."""

    pass


def new_doc_id() -> str:
    """Millisecond stamp plus random suffix, e.g. doc_1718000000000_9f2c4a1b."""
    return f"doc_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def empty_collections() -> Collections:
    return {name: {} for name in DEFAULT_COLLECTIONS}


class DocumentStore:
    """
    The single source of truth. Construct with `await DocumentStore.open(...)`.
    Every read returns a deep copy.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        bus: EventBus | None = None,
        *,
        key: str | None = None,
        id_factory: Callable[[], str] = new_doc_id,
    ) -> None:
        self._storage = storage
        self.bus = bus or EventBus()
        self.key = key or settings.STORAGE_KEY
        self._id_factory = id_factory
        self._collections: Collections = empty_collections()
        self._lock = asyncio.Lock()
        self._closed = False

    # -- lifecycle --

    @classmethod
    async def open(
        cls,
        storage: KeyValueStorage,
        bus: EventBus | None = None,
        *,
        key: str | None = None,
        id_factory: Callable[[], str] = new_doc_id,
    ) -> DocumentStore:
        store = cls(storage, bus, key=key, id_factory=id_factory)
        await store.load()
        return store

    async def load(self) -> None:
        """
        Read the blob into memory. A missing blob gives the empty default
        store; a malformed one is logged and also gives the empty default
        store.
        """
        blob = await self._storage.get(self.key)
        collections = empty_collections()
        if blob is not None:
            try:
                collections.update(decode_store(blob))
            except SerializationError as e:
                logger.warning("DocumentStore: discarding unreadable blob %r: %s", self.key, e)
                collections = empty_collections()
        self._collections = collections
        logger.debug(
            "DocumentStore: loaded %d collections, %d documents",
            len(collections),
            sum(len(c) for c in collections.values()),
        )

    async def close(self) -> None:
        """Tear down. Reads still work; mutations raise StoreClosed."""
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    # -- reads --

    def read(self, collection_name: str) -> list[dict[str, Any]]:
        """Snapshot copy of every document in a collection, in fetch order."""
        return copy.deepcopy(list(self._collections.get(collection_name, {}).values()))

    def get(self, collection_name: str, doc_id: str) -> dict[str, Any] | None:
        d = self._collections.get(collection_name, {}).get(doc_id)
        return copy.deepcopy(d) if d is not None else None

    def collections(self) -> list[str]:
        return list(self._collections)

    def count(self, collection_name: str) -> int:
        return len(self._collections.get(collection_name, {}))

    def to_blob(self) -> str:
        return encode_store(self._collections)

    # -- mutations --

    async def insert(self, collection_name: str, fields: dict[str, Any]) -> str:
        """Add a document with a fresh identifier. Returns the identifier."""
        async with self._lock:
            self._check_open()
            coll = self._collections.get(collection_name, {})
            doc_id = self._id_factory()
            while doc_id in coll:
                doc_id = self._id_factory()

            new_coll = dict(coll)
            document = copy.deepcopy({k: v for k, v in fields.items() if k != "id"})
            new_coll[doc_id] = {**document, "id": doc_id}
            await self._commit(collection_name, new_coll)
        return doc_id

    async def merge(
        self,
        collection_name: str,
        doc_id: str,
        partial: dict[str, Any],
        *,
        check: Callable[[dict[str, Any]], Any] | None = None,
    ) -> bool:
        """
        Shallow-merge fields into an existing document. False if it doesn't exist.
        check, if given, sees the merged document before it is written; an
        exception from it aborts the merge and propagates.
        """
        async with self._lock:
            self._check_open()
            coll = self._collections.get(collection_name, {})
            existing = coll.get(doc_id)
            if existing is None:
                return False

            changes = copy.deepcopy({k: v for k, v in partial.items() if k != "id"})
            merged = {**existing, **changes}
            if check is not None:
                check(copy.deepcopy(merged))
            new_coll = dict(coll)
            new_coll[doc_id] = merged
            await self._commit(collection_name, new_coll)
        return True

    async def remove(self, collection_name: str, doc_id: str) -> bool:
        """Delete a document. False if it doesn't exist."""
        async with self._lock:
            self._check_open()
            coll = self._collections.get(collection_name, {})
            if doc_id not in coll:
                return False

            new_coll = {k: v for k, v in coll.items() if k != doc_id}
            await self._commit(collection_name, new_coll)
        return True

    # -- internals --

    def _check_open(self) -> None:
        if self._closed:
            raise StoreClosed(f"Store {self.key!r} is closed")

    async def _commit(self, collection_name: str, new_coll: dict[str, dict[str, Any]]) -> None:
        """Persist the store with new_coll in place, then swap it in and notify."""
        staged = {**self._collections, collection_name: new_coll}
        blob = encode_store(staged)
        await self._storage.set(self.key, blob)

        self._collections = staged
        self.bus.emit(STORE_CHANGED, collection_name)
