"""
Kernel test configuration.

Every test gets a fresh MemoryStorage-backed store with deterministic ids
(doc_001, doc_002, ...). Postgres tests that need DATABASE_URL are skipped
automatically when it is not set.
"""

from __future__ import annotations

import asyncio
import itertools

import pytest

from namma.kernel.bus import EventBus
from namma.kernel.mutations import MutationAPI
from namma.kernel.storage import MemoryStorage, StorageError
from namma.kernel.store import DocumentStore
from namma.kernel.subscriptions import SubscriptionRegistry

STORE_KEY = "test_store"


def counter_ids(prefix: str = "doc"):
    counter = itertools.count(1)
    return lambda: f"{prefix}_{next(counter):03d}"


class FlakyStorage(MemoryStorage):
    """MemoryStorage whose writes can be made to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_writes = False
        self.fail_after: int | None = None

    async def set(self, key: str, value: str) -> None:
        if self.fail_after is not None:
            if self.fail_after <= 0:
                raise StorageError("disk full")
            self.fail_after -= 1
        if self.fail_writes:
            raise StorageError("disk full")
        await super().set(key, value)


class SlowStorage(MemoryStorage):
    """MemoryStorage whose writes yield to the event loop, like FileStorage does."""

    def __init__(self, delay: float = 0.01) -> None:
        super().__init__()
        self.delay = delay

    async def set(self, key: str, value: str) -> None:
        await asyncio.sleep(self.delay)
        await super().set(key, value)


@pytest.fixture
def storage():
    return FlakyStorage()


@pytest.fixture
def slow_storage():
    return SlowStorage()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
async def store(storage, bus):
    return await DocumentStore.open(storage, bus, key=STORE_KEY, id_factory=counter_ids())


@pytest.fixture
def registry(store):
    reg = SubscriptionRegistry(store)
    yield reg
    reg.close()


@pytest.fixture
def mutations(store):
    return MutationAPI(store)


class Recorder:
    """Subscription callback that keeps every delivered snapshot."""

    def __init__(self) -> None:
        self.snapshots = []

    def __call__(self, snapshot) -> None:
        self.snapshots.append(snapshot)

    @property
    def calls(self) -> int:
        return len(self.snapshots)

    @property
    def last(self):
        return self.snapshots[-1]

    def last_ids(self) -> list[str]:
        return self.last.ids()


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def make_recorder():
    return Recorder
