"""
Namma Kernel — Mutation API

The only writer path into the DocumentStore. Every call returns a
MutationResult (or BatchResult) instead of raising:

  NOT_FOUND   update/delete of an id that isn't there; nothing written
  VALIDATION  fields don't fit the collection's record shape; nothing written
  STORAGE     the durable write failed; store left as it was
  CLOSED      the store has been torn down

batch_update is sequential and NOT atomic: each update is persisted and
announced on its own, and a failure part way leaves the earlier updates
applied. The BatchResult says which ones.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, ValidationError

from namma.kernel.codec import SerializationError
from namma.kernel.records import Record, model_document, record_type
from namma.kernel.storage import StorageError
from namma.kernel.store import DocumentStore, StoreClosed
from namma.kernel.types import (
    CLOSED,
    NOT_FOUND,
    STORAGE,
    VALIDATION,
    BatchResult,
    CollectionRef,
    DocumentRef,
    MutationResult,
)

logger = logging.getLogger(__name__)

Fields = dict[str, Any] | BaseModel


def _fields(data: Fields) -> dict[str, Any]:
    if isinstance(data, Record):
        return data.to_document()
    if isinstance(data, BaseModel):
        return model_document(data)
    return dict(data)


def _failed(error: str, message: str, doc_id: str | None = None) -> MutationResult:
    return MutationResult(ok=False, id=doc_id, error=error, message=message)


class MutationAPI:
    """create / update / delete / batch against one store."""

    def __init__(self, store: DocumentStore, *, validate: bool = True) -> None:
        self._store = store
        self._validate = validate

    # -- create --

    async def create_document(self, ref: CollectionRef | str, data: Fields) -> MutationResult:
        """Add a document. result.id is the new identifier."""
        name = ref.path if isinstance(ref, CollectionRef) else ref
        fields = _fields(data)

        model = record_type(name) if self._validate else None
        if model is not None:
            try:
                fields = model.model_validate(fields).to_document()
            except ValidationError as e:
                logger.warning("create_document: %s rejected: %s", name, e.errors()[:3])
                return _failed(VALIDATION, str(e))

        try:
            doc_id = await self._store.insert(name, fields)
        except SerializationError as e:
            return _failed(VALIDATION, str(e))
        except StorageError as e:
            logger.error("create_document: %s not persisted: %s", name, e)
            return _failed(STORAGE, str(e))
        except StoreClosed as e:
            return _failed(CLOSED, str(e))

        return MutationResult(ok=True, id=doc_id)

    # -- update --

    async def update_document(self, ref: DocumentRef, data: Fields) -> MutationResult:
        """Shallow-merge fields into an existing document."""
        partial = _fields(data)

        if self._store.get(ref.collection, ref.id) is None:
            logger.warning("update_document: %s/%s not found", ref.collection, ref.id)
            return _failed(NOT_FOUND, f"{ref.collection}/{ref.id} does not exist", ref.id)

        # Checked by the store against the merged document, under its lock
        model = record_type(ref.collection) if self._validate else None
        check = model.model_validate if model is not None else None

        try:
            merged = await self._store.merge(ref.collection, ref.id, partial, check=check)
        except ValidationError as e:
            logger.warning("update_document: %s/%s rejected: %s", ref.collection, ref.id, e.errors()[:3])
            return _failed(VALIDATION, str(e), ref.id)
        except SerializationError as e:
            return _failed(VALIDATION, str(e), ref.id)
        except StorageError as e:
            logger.error("update_document: %s/%s not persisted: %s", ref.collection, ref.id, e)
            return _failed(STORAGE, str(e), ref.id)
        except StoreClosed as e:
            return _failed(CLOSED, str(e), ref.id)

        if not merged:
            # Removed between the existence check and the write
            return _failed(NOT_FOUND, f"{ref.collection}/{ref.id} does not exist", ref.id)
        return MutationResult(ok=True, id=ref.id)

    # -- delete --

    async def delete_document(self, ref: DocumentRef) -> MutationResult:
        """Remove a document. Already-absent is reported as NOT_FOUND."""
        try:
            removed = await self._store.remove(ref.collection, ref.id)
        except StorageError as e:
            logger.error("delete_document: %s/%s not persisted: %s", ref.collection, ref.id, e)
            return _failed(STORAGE, str(e), ref.id)
        except StoreClosed as e:
            return _failed(CLOSED, str(e), ref.id)

        if not removed:
            logger.info("delete_document: %s/%s already absent", ref.collection, ref.id)
            return _failed(NOT_FOUND, f"{ref.collection}/{ref.id} does not exist", ref.id)
        return MutationResult(ok=True, id=ref.id)

    # -- batch --

    async def batch_update(self, updates: Iterable[tuple[DocumentRef, Fields]]) -> BatchResult:
        """Apply updates one after another. Not atomic; see module docstring."""
        result = BatchResult()
        for ref, data in updates:
            result.results.append((ref, await self.update_document(ref, data)))

        if not result.ok:
            logger.warning(
                "batch_update: %d of %d updates failed",
                len(result.failed),
                len(result.results),
            )
        return result

    def batch(self) -> WriteBatch:
        return WriteBatch(self)


class WriteBatch:
    """
    Queue updates, then commit() them through batch_update.
    Nothing is written until commit().
    """

    def __init__(self, api: MutationAPI) -> None:
        self._api = api
        self._updates: list[tuple[DocumentRef, Fields]] = []
        self._committed = False

    def update(self, ref: DocumentRef, data: Fields) -> WriteBatch:
        if self._committed:
            raise RuntimeError("WriteBatch already committed")
        self._updates.append((ref, data))
        return self

    def __len__(self) -> int:
        return len(self._updates)

    async def commit(self) -> BatchResult:
        if self._committed:
            raise RuntimeError("WriteBatch already committed")
        self._committed = True
        return await self._api.batch_update(self._updates)
