"""
Namma Kernel — Subscription Registry

Live queries. subscribe() delivers the current result synchronously before
returning; after that, every persisted mutation to the query's collection
re-evaluates the query and re-delivers a fresh QuerySnapshot.

Subscriptions are keyed by collection name: a mutation to "notes" never
re-runs a "tasks" query. Within a collection, listeners are walked in
registration order.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from typing import Any

from namma.kernel.query import Query, evaluate
from namma.kernel.store import DocumentStore
from namma.kernel.types import STORE_CHANGED, QuerySnapshot

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[QuerySnapshot], Any]
ErrorCallback = Callable[[Exception], Any]


class Subscription:
    """
    Handle for one (query, callback) registration.
    Calling the handle unsubscribes it, like the function returned by onSnapshot.
    """

    __slots__ = ("id", "query", "callback", "on_error", "active", "deliveries", "_registry")

    def __init__(
        self,
        sub_id: int,
        query: Query,
        callback: SnapshotCallback,
        on_error: ErrorCallback | None,
        registry: SubscriptionRegistry,
    ) -> None:
        self.id = sub_id
        self.query = query
        self.callback = callback
        self.on_error = on_error
        self.active = True
        self.deliveries = 0
        self._registry = registry

    def unsubscribe(self) -> None:
        self._registry.unsubscribe(self)

    def __call__(self) -> None:
        self.unsubscribe()

    def __repr__(self) -> str:  # pragma: no cover
        state = "active" if self.active else "cancelled"
        return f"Subscription(id={self.id}, collection={self.query.collection!r}, {state})"


class SubscriptionRegistry:
    """Tracks active subscriptions against one store."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._ids = itertools.count(1)
        self._by_collection: dict[str, dict[int, Subscription]] = {}
        self._detach = store.bus.on(STORE_CHANGED, self._on_store_changed)

    # -- public API --

    def subscribe(
        self,
        query: Query,
        callback: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        """Register and deliver the current result before returning."""
        sub = Subscription(next(self._ids), query, callback, on_error, self)
        self._by_collection.setdefault(query.collection, {})[sub.id] = sub
        self._deliver(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        """Idempotent. No delivery reaches sub after this returns."""
        sub.active = False
        subs = self._by_collection.get(sub.query.collection)
        if subs is not None:
            subs.pop(sub.id, None)
            if not subs:
                del self._by_collection[sub.query.collection]

    def get_snapshot(self, query: Query) -> QuerySnapshot:
        """One-shot evaluation without registering."""
        return QuerySnapshot(query.collection, evaluate(self._store.read(query.collection), query))

    def active_count(self, collection_name: str | None = None) -> int:
        if collection_name is not None:
            return len(self._by_collection.get(collection_name, {}))
        return sum(len(s) for s in self._by_collection.values())

    def close(self) -> None:
        """Cancel every subscription and stop listening to the store."""
        for subs in list(self._by_collection.values()):
            for sub in list(subs.values()):
                self.unsubscribe(sub)
        self._detach()

    # -- internals --

    def _on_store_changed(self, collection_name: str) -> None:
        subs = self._by_collection.get(collection_name)
        if not subs:
            return
        # Copy: a callback may subscribe or unsubscribe while we walk
        for sub in list(subs.values()):
            if sub.active:
                self._deliver(sub)

    def _deliver(self, sub: Subscription) -> None:
        snapshot = self.get_snapshot(sub.query)
        sub.deliveries += 1
        try:
            sub.callback(snapshot)
        except Exception as e:
            logger.exception(
                "SubscriptionRegistry: listener %d on %r failed",
                sub.id,
                sub.query.collection,
            )
            if sub.on_error is not None:
                sub.on_error(e)
