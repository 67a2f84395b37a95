"""
Namma Kernel — Ordering Reconciler

Optimistic drag-reordering of a live list (tasks, by default) on top of a
subscription.

States:
  SYNCED    displayed order == last store-derived order
  DIVERGED  a user reorder is waiting to be persisted

Transitions:
  store snapshot while SYNCED     → adopt as displayed order and baseline
  reorder()                       → display immediately, DIVERGED, (re)start debounce
  debounce fires                  → diff against baseline, write rank = position
                                    index for every item whose rank changes
  store snapshot while DIVERGED   → the store wins: pending reorder is dropped
                                    (logged, counted in `overwrites`), SYNCED

While a commit is writing, each per-item notification only moves the
baseline; the displayed order is kept until the store catches up with it,
so the list doesn't flicker through half-written states.

Ranks are numbers in RANK_FIELD ("order"). Items without one sort after
every ranked item, in fetch order.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Callable, Sequence
from enum import Enum
from typing import Any

from namma.config import settings
from namma.kernel.mutations import MutationAPI
from namma.kernel.query import Query
from namma.kernel.subscriptions import Subscription, SubscriptionRegistry
from namma.kernel.types import (
    RANK_FIELD,
    BatchResult,
    DocumentRef,
    MutationResult,
    QuerySnapshot,
    server_timestamp,
)

logger = logging.getLogger(__name__)

OrderCallback = Callable[[list[dict[str, Any]]], Any]


class SyncState(str, Enum):
    SYNCED = "synced"
    DIVERGED = "diverged"


# ---------------------------------------------------------------------------
# Rank helpers (pure)
# ---------------------------------------------------------------------------


def rank_of(item: dict[str, Any], field: str = RANK_FIELD) -> int | float | None:
    value = item.get(field)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    return None


def sort_by_rank(items: Sequence[dict[str, Any]], field: str = RANK_FIELD) -> list[dict[str, Any]]:
    """Ranked items ascending (stable), then unranked items in input order."""
    ranked = [i for i in items if rank_of(i, field) is not None]
    unranked = [i for i in items if rank_of(i, field) is None]
    ranked.sort(key=lambda i: rank_of(i, field))
    return ranked + unranked


def next_rank(items: Sequence[dict[str, Any]], field: str = RANK_FIELD) -> int | float:
    """
    Rank for a new item so it sorts first: min existing rank - 1.
    Unranked items count as 0; an empty list gives -1.
    """
    ranks = [rank_of(i, field) or 0 for i in items]
    return min(ranks, default=0) - 1


def rank_changes(items: Sequence[dict[str, Any]], field: str = RANK_FIELD) -> list[tuple[str, int]]:
    """(id, new rank) for every item whose rank isn't its position index."""
    return [(item["id"], index) for index, item in enumerate(items) if rank_of(item, field) != index]


def _ids(items: Sequence[dict[str, Any]]) -> list[str]:
    return [i["id"] for i in items]


# ---------------------------------------------------------------------------
# Reconciler
# ---------------------------------------------------------------------------


class OrderingReconciler:
    """
    One live, user-reorderable list.

        reconciler = OrderingReconciler(registry, mutations, query(...)).start()
        reconciler.reorder(["c", "a", "b"])   # from the drag handler
        await reconciler.settle()             # in tests: wait for debounce + commit
        reconciler.close()
    """

    def __init__(
        self,
        registry: SubscriptionRegistry,
        mutations: MutationAPI,
        query: Query,
        *,
        rank_field: str = RANK_FIELD,
        delay: float | None = None,
    ) -> None:
        self._registry = registry
        self._mutations = mutations
        self.query = query
        self.rank_field = rank_field
        self.delay = settings.REORDER_DEBOUNCE_SECONDS if delay is None else delay

        self._state = SyncState.SYNCED
        self._items: list[dict[str, Any]] = []
        self._baseline: list[dict[str, Any]] = []
        self._latest: list[dict[str, Any]] = []
        self._subscription: Subscription | None = None
        self._listeners: list[OrderCallback] = []

        self._timer: asyncio.Task | None = None
        self._commits: set[asyncio.Task] = set()
        self._commit_lock = asyncio.Lock()
        self._committing = False

        self.overwrites = 0
        self.last_result: BatchResult | None = None

    # -- lifecycle --

    def start(self) -> OrderingReconciler:
        """Subscribe. The first snapshot is adopted before this returns."""
        if self._subscription is None:
            self._subscription = self._registry.subscribe(self.query, self._on_snapshot)
        return self

    def close(self) -> None:
        """Drop any pending reorder and stop listening."""
        self._cancel_timer()
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._listeners.clear()

    # -- views --

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def items(self) -> list[dict[str, Any]]:
        """The displayed order (copies)."""
        return copy.deepcopy(self._items)

    @property
    def order(self) -> list[str]:
        return _ids(self._items)

    @property
    def baseline_order(self) -> list[str]:
        return _ids(self._baseline)

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def on_change(self, callback: OrderCallback) -> Callable[[], None]:
        """Observe the displayed order. Returns an unsubscribe function."""
        self._listeners.append(callback)

        def _remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _remove

    # -- user actions --

    def reorder(self, new_order: Sequence[str | dict[str, Any]]) -> None:
        """
        Apply a drag result locally and (re)start the debounce.
        new_order must be a permutation of the displayed items (ids or docs).
        Must be called from inside the running event loop.
        """
        ids = [x if isinstance(x, str) else x["id"] for x in new_order]
        by_id = {i["id"]: i for i in self._items}
        if len(ids) != len(set(ids)) or set(ids) != set(by_id):
            raise ValueError(f"reorder must be a permutation of {sorted(by_id)}, got {ids}")

        self._items = [by_id[i] for i in ids]
        self._state = SyncState.DIVERGED
        self._schedule()
        self._notify()

    async def flush(self) -> BatchResult | None:
        """Commit the pending reorder now instead of waiting for the debounce."""
        self._cancel_timer()
        return await self._commit()

    async def settle(self) -> None:
        """Wait until no debounce is pending and no commit is running."""
        while True:
            pending = [t for t in (self._timer, *self._commits) if t is not None and not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def create_item(self, fields: dict[str, Any]) -> MutationResult:
        """
        Create an item that sorts first. Fields the query filters on are
        filled in so the new item lands in this list. A pending reorder is
        committed first, and a commit already writing is waited for, so the
        new rank is computed from the ranks the store will actually hold.
        """
        if self._timer is not None:
            await self.flush()
        await self.settle()

        data = dict(fields)
        for f in self.query.filters:
            data.setdefault(f.field, f.value)
        data.setdefault("createdAt", server_timestamp())
        data[self.rank_field] = next_rank(self._items, self.rank_field)
        return await self._mutations.create_document(self.query.collection, data)

    # -- internals --

    def _on_snapshot(self, snapshot: QuerySnapshot) -> None:
        docs = sort_by_rank([d.data() for d in snapshot], self.rank_field)
        self._latest = docs

        if self._committing:
            self._baseline = docs
            if _ids(docs) == _ids(self._items):
                self._adopt(docs)
            return

        if self._state is SyncState.DIVERGED:
            self._cancel_timer()
            if _ids(docs) != _ids(self._items):
                self.overwrites += 1
                logger.warning(
                    "OrderingReconciler: store order replaced a pending reorder on %r (%d items)",
                    self.query.collection,
                    len(docs),
                )

        self._adopt(docs)

    def _adopt(self, docs: list[dict[str, Any]]) -> None:
        self._items = list(docs)
        self._baseline = list(docs)
        self._state = SyncState.SYNCED
        self._notify()

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback(self.items)
            except Exception:
                logger.exception("OrderingReconciler: order listener failed")

    def _schedule(self) -> None:
        self._cancel_timer()
        self._timer = asyncio.get_running_loop().create_task(self._debounce())

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _debounce(self) -> None:
        await asyncio.sleep(self.delay)
        self._timer = None
        task = asyncio.get_running_loop().create_task(self._commit())
        self._commits.add(task)
        task.add_done_callback(self._commits.discard)

    async def _commit(self) -> BatchResult | None:
        async with self._commit_lock:
            if self._state is not SyncState.DIVERGED:
                return None
            if _ids(self._items) == _ids(self._baseline):
                self._state = SyncState.SYNCED
                return None

            collection = self.query.collection
            updates = [
                (DocumentRef(collection, doc_id), {self.rank_field: rank})
                for doc_id, rank in rank_changes(self._items, self.rank_field)
            ]
            logger.debug("OrderingReconciler: writing %d rank changes on %r", len(updates), collection)

            self._committing = True
            try:
                result = await self._mutations.batch_update(updates)
            except Exception:
                logger.exception("OrderingReconciler: commit on %r failed", collection)
                result = None
            finally:
                self._committing = False

            self.last_result = result
            if result is not None and not result.ok:
                logger.warning(
                    "OrderingReconciler: %d of %d rank writes failed on %r",
                    len(result.failed),
                    len(updates),
                    collection,
                )

            if self._timer is None:
                self._adopt(self._latest)
            else:
                # A newer reorder is pending; keep showing it
                self._baseline = self._latest
            return result
