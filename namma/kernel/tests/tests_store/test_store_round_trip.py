"""
Document Store -- Round-Trip Tests

Write a store with N documents across M collections, reopen it from the
same storage, verify every collection and document matches.

Also covers the failure side of persistence:
  - malformed blobs fail closed to the empty default store
  - a failed durable write leaves memory, disk and listeners untouched
  - FileStorage survives a reopen and never leaves temp files behind
"""

import json

import pytest

from namma.kernel.codec import SerializationError, decode_store, encode_store
from namma.kernel.storage import FileStorage, MemoryStorage, StorageError
from namma.kernel.store import DocumentStore
from namma.kernel.types import DEFAULT_COLLECTIONS, STORE_CHANGED, Timestamp

STORE_KEY = "test_store"


def snapshot_of(store):
    return {name: store.read(name) for name in store.collections()}


async def fill(store):
    """12 documents across 4 collections, with nested values and Timestamps."""
    for i in range(5):
        await store.insert(
            "tasks",
            {
                "title": f"Task {i}",
                "order": i,
                "completed": i % 2 == 0,
                "workspaceId": "w1" if i < 3 else "w2",
                "createdAt": Timestamp(1_700_000_000 + i, 250_000_000),
            },
        )
    for i in range(3):
        await store.insert("notes", {"title": f"Note {i}", "content": "x" * i, "tags": ["a", {"b": i}]})
    for i in range(2):
        await store.insert("habits", {"title": f"Habit {i}", "streak": i, "history": []})
    for i in range(2):
        await store.insert("journal", {"text": f"Entry {i}", "mood": None, "score": 1.5 * i})


# ============================================================================
# Round trip
# ============================================================================


class TestRoundTrip:
    @pytest.mark.asyncio
    async def test_reopen_restores_everything(self, storage, store):
        await fill(store)
        before = snapshot_of(store)

        reopened = await DocumentStore.open(storage, key=STORE_KEY)

        assert snapshot_of(reopened) == before
        assert reopened.count("tasks") == 5
        assert reopened.count("journal") == 2

    @pytest.mark.asyncio
    async def test_timestamps_come_back_as_timestamps(self, storage, store):
        doc_id = await store.insert("tasks", {"title": "A", "createdAt": Timestamp(1_700_000_000, 5)})

        reopened = await DocumentStore.open(storage, key=STORE_KEY)
        created = reopened.get("tasks", doc_id)["createdAt"]

        assert isinstance(created, Timestamp)
        assert created == Timestamp(1_700_000_000, 5)

    @pytest.mark.asyncio
    async def test_blob_layout(self, storage, store):
        doc_id = await store.insert("tasks", {"title": "A", "createdAt": Timestamp(10, 20)})

        data = json.loads(storage.blobs[STORE_KEY])

        assert set(DEFAULT_COLLECTIONS) <= set(data)
        assert data["tasks"] == [
            {"title": "A", "createdAt": {"seconds": 10, "nanoseconds": 20}, "id": doc_id},
        ]

    @pytest.mark.asyncio
    async def test_fetch_order_survives_reopen(self, storage, store):
        await fill(store)
        reopened = await DocumentStore.open(storage, key=STORE_KEY)
        assert [d["title"] for d in reopened.read("tasks")] == [f"Task {i}" for i in range(5)]

    def test_codec_round_trip(self):
        collections = {
            "tasks": {"a": {"id": "a", "due": Timestamp(1, 2), "sub": [{"t": Timestamp(3, 4)}]}},
            "empty": {},
        }
        assert decode_store(encode_store(collections)) == collections


# ============================================================================
# Malformed blobs fail closed
# ============================================================================


class TestMalformedBlob:
    @pytest.mark.parametrize(
        "blob",
        [
            "not json at all",
            "[1, 2, 3]",
            '{"tasks": {"a": 1}}',
            '{"tasks": [1, 2]}',
            '{"tasks": [{"title": "no id"}]}',
            '{"tasks": [{"id": 7}]}',
            "",
        ],
    )
    @pytest.mark.asyncio
    async def test_malformed_blob_gives_empty_store(self, blob):
        storage = MemoryStorage({STORE_KEY: blob})

        store = await DocumentStore.open(storage, key=STORE_KEY)

        assert store.collections() == list(DEFAULT_COLLECTIONS)
        assert all(store.read(name) == [] for name in store.collections())

    @pytest.mark.asyncio
    async def test_malformed_blob_is_not_overwritten_on_open(self):
        storage = MemoryStorage({STORE_KEY: "garbage"})
        await DocumentStore.open(storage, key=STORE_KEY)
        assert storage.blobs[STORE_KEY] == "garbage"

    @pytest.mark.asyncio
    async def test_store_is_usable_after_failing_closed(self):
        storage = MemoryStorage({STORE_KEY: "garbage"})
        store = await DocumentStore.open(storage, key=STORE_KEY)

        doc_id = await store.insert("tasks", {"title": "fresh"})

        reopened = await DocumentStore.open(storage, key=STORE_KEY)
        assert reopened.get("tasks", doc_id)["title"] == "fresh"

    def test_decode_raises_serialization_error(self):
        with pytest.raises(SerializationError):
            decode_store("{")

    def test_duplicate_ids_keep_last(self):
        blob = '{"tasks": [{"id": "a", "n": 1}, {"id": "a", "n": 2}]}'
        assert decode_store(blob) == {"tasks": {"a": {"id": "a", "n": 2}}}


# ============================================================================
# Failed writes
# ============================================================================


class TestFailedWrite:
    @pytest.mark.asyncio
    async def test_failed_write_changes_nothing(self, storage, store, bus):
        doc_id = await store.insert("tasks", {"title": "A"})
        blob_before = storage.blobs[STORE_KEY]
        seen = []
        bus.on(STORE_CHANGED, seen.append)

        storage.fail_writes = True
        with pytest.raises(StorageError):
            await store.insert("tasks", {"title": "B"})
        with pytest.raises(StorageError):
            await store.merge("tasks", doc_id, {"title": "A2"})
        with pytest.raises(StorageError):
            await store.remove("tasks", doc_id)

        assert store.read("tasks") == [{"title": "A", "id": doc_id}]
        assert storage.blobs[STORE_KEY] == blob_before
        assert seen == []

    @pytest.mark.asyncio
    async def test_unserializable_value_is_refused(self, storage, store):
        with pytest.raises(SerializationError):
            await store.insert("tasks", {"title": "A", "bad": object()})
        assert store.read("tasks") == []
        assert storage.writes == 0


# ============================================================================
# FileStorage
# ============================================================================


class TestFileStorage:
    @pytest.mark.asyncio
    async def test_file_round_trip(self, tmp_path):
        store = await DocumentStore.open(FileStorage(tmp_path), key=STORE_KEY)
        await fill(store)
        before = snapshot_of(store)

        reopened = await DocumentStore.open(FileStorage(tmp_path), key=STORE_KEY)

        assert snapshot_of(reopened) == before
        assert sorted(p.name for p in tmp_path.iterdir()) == [f"{STORE_KEY}.json"]

    @pytest.mark.asyncio
    async def test_missing_file_is_none(self, tmp_path):
        assert await FileStorage(tmp_path / "nowhere").get("x") is None

    @pytest.mark.asyncio
    async def test_delete(self, tmp_path):
        fs = FileStorage(tmp_path)
        await fs.set("k", "v")
        await fs.delete("k")
        await fs.delete("k")
        assert await fs.get("k") is None

    @pytest.mark.asyncio
    async def test_rejects_path_like_keys(self, tmp_path):
        with pytest.raises(StorageError):
            await FileStorage(tmp_path).set("../escape", "v")
