"""
Namma Kernel — the reactive document store.

Components:
  store           DocumentStore: collections, durable blob, change signal
  query           (documents, query) → ordered documents  (pure, deterministic)
  subscriptions   live queries, re-delivered after every relevant mutation
  mutations       create / update / delete / batch, the only writer path
  reorder         optimistic, debounced drag-reordering of a live list
  session         the signed-in user blob and its own change signal
  assembly        builds and tears down all of the above for one session
"""

from namma.kernel.assembly import Kernel
from namma.kernel.mutations import MutationAPI, WriteBatch
from namma.kernel.query import Query, evaluate, order_by, query, where
from namma.kernel.reorder import OrderingReconciler, SyncState
from namma.kernel.session import SessionStore, User
from namma.kernel.storage import FileStorage, KeyValueStorage, MemoryStorage
from namma.kernel.store import DocumentStore
from namma.kernel.subscriptions import Subscription, SubscriptionRegistry
from namma.kernel.types import (
    BatchResult,
    CollectionRef,
    DocumentRef,
    DocumentSnapshot,
    MutationResult,
    QuerySnapshot,
    Timestamp,
    collection,
    doc,
    server_timestamp,
)

__all__ = [
    "Kernel",
    "DocumentStore",
    "SubscriptionRegistry",
    "Subscription",
    "MutationAPI",
    "WriteBatch",
    "OrderingReconciler",
    "SyncState",
    "SessionStore",
    "User",
    "KeyValueStorage",
    "MemoryStorage",
    "FileStorage",
    "Query",
    "query",
    "where",
    "order_by",
    "evaluate",
    "collection",
    "doc",
    "Timestamp",
    "server_timestamp",
    "CollectionRef",
    "DocumentRef",
    "DocumentSnapshot",
    "QuerySnapshot",
    "MutationResult",
    "BatchResult",
]
