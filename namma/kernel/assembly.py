"""
Namma Kernel — Assembly Layer

Builds the kernel for one session and tears it down again:

  storage → bus → DocumentStore ─┬→ SubscriptionRegistry
                                 └→ MutationAPI
               → SessionStore

Nothing here is global: every component is handed what it needs. Views get
a Kernel and call `kernel.subscriptions`, `kernel.mutations`,
`kernel.session`, or `kernel.reconciler(query)`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from namma.config import Settings, settings as default_settings
from namma.kernel.bus import EventBus
from namma.kernel.mutations import MutationAPI
from namma.kernel.query import Query
from namma.kernel.reorder import OrderingReconciler
from namma.kernel.session import SessionStore
from namma.kernel.storage import FileStorage, KeyValueStorage, MemoryStorage
from namma.kernel.store import DocumentStore, new_doc_id
from namma.kernel.subscriptions import SubscriptionRegistry

logger = logging.getLogger(__name__)


async def make_storage(config: Settings | None = None) -> KeyValueStorage:
    """Pick the storage backend named in settings."""
    config = config or default_settings
    if config.STORAGE_BACKEND == "memory":
        return MemoryStorage()
    if config.STORAGE_BACKEND == "postgres":
        if not config.DATABASE_URL:
            raise RuntimeError("DATABASE_URL environment variable is required for the postgres backend")
        from namma.kernel.postgres_storage import PostgresStorage

        return await PostgresStorage.connect(config.DATABASE_URL)
    return FileStorage(config.DATA_DIR)


class Kernel:
    """One session's store, registry, mutation API and auth session."""

    def __init__(
        self,
        storage: KeyValueStorage,
        bus: EventBus,
        store: DocumentStore,
        session: SessionStore,
    ) -> None:
        self.storage = storage
        self.bus = bus
        self.store = store
        self.session = session
        self.subscriptions = SubscriptionRegistry(store)
        self.mutations = MutationAPI(store)
        self._reconcilers: list[OrderingReconciler] = []
        self._closed = False

    @classmethod
    async def open(
        cls,
        storage: KeyValueStorage | None = None,
        *,
        config: Settings | None = None,
        id_factory: Callable[[], str] = new_doc_id,
    ) -> Kernel:
        """Load the store and session from storage (settings' backend if none given)."""
        config = config or default_settings
        storage = storage or await make_storage(config)
        bus = EventBus()
        store = await DocumentStore.open(storage, bus, key=config.STORAGE_KEY, id_factory=id_factory)
        session = await SessionStore.open(storage, bus, key=config.AUTH_KEY)
        logger.info("Kernel: opened store %r with %d collections", store.key, len(store.collections()))
        return cls(storage, bus, store, session)

    def reconciler(self, query: Query, *, delay: float | None = None) -> OrderingReconciler:
        """A started reorder reconciler on query; closed with the kernel."""
        r = OrderingReconciler(self.subscriptions, self.mutations, query, delay=delay).start()
        self._reconcilers.append(r)
        return r

    async def close(self) -> None:
        """Cancel pending reorders and subscriptions, close the store and storage."""
        if self._closed:
            return
        self._closed = True
        for r in self._reconcilers:
            r.close()
        self._reconcilers.clear()
        self.subscriptions.close()
        await self.store.close()
        await self.storage.close()
        self.bus.clear()
        logger.info("Kernel: closed store %r", self.store.key)

    async def __aenter__(self) -> Kernel:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()
