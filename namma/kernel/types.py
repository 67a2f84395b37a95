"""
Namma Kernel — Shared Types

Data classes used across the store, query engine, subscription registry,
mutation API and reorder reconciler. These are the contracts that bind the
kernel together.

Documents themselves stay plain dicts (`{"id": ..., **fields}`) inside the
store. The classes here are the shapes handed across component seams:
  Timestamp         seconds + nanoseconds instant, JSON-encodable
  CollectionRef     names a collection for create/query calls
  DocumentRef       names {collection, id} for targeted mutations
  DocumentSnapshot  one delivered document (private copy on data())
  QuerySnapshot     ordered result of a query evaluation
  MutationResult    outcome of one MutationAPI call (never raises)
  BatchResult       outcome of a batch of updates
"""

from __future__ import annotations

import copy
import functools
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Collections every fresh store starts with.
DEFAULT_COLLECTIONS: tuple[str, ...] = (
    "users",
    "tasks",
    "routines",
    "events",
    "projects",
    "exams",
    "habits",
    "notes",
)

# Bus event names
STORE_CHANGED = "storage-update"
AUTH_CHANGED = "auth-change"

# Rank field used by the reorder reconciler
RANK_FIELD = "order"

# Mutation error codes
NOT_FOUND = "NOT_FOUND"
VALIDATION = "VALIDATION"
STORAGE = "STORAGE"
CLOSED = "CLOSED"

_NANOS_PER_SECOND = 1_000_000_000


class KernelError(Exception):
    """Base class for every error the kernel raises."""

    pass


# ---------------------------------------------------------------------------
# Timestamp
# ---------------------------------------------------------------------------


@functools.total_ordering
@dataclass(frozen=True)
class Timestamp:
    """
    A point in time as whole seconds since the epoch plus a nanosecond
    remainder. Equality and ordering are by represented instant.

    Persists as {"seconds": s, "nanoseconds": n}.
    """

    seconds: int
    nanoseconds: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.nanoseconds < _NANOS_PER_SECOND:
            # Normalize overflow into whole seconds so equality stays by instant
            extra, nanos = divmod(self.nanoseconds, _NANOS_PER_SECOND)
            object.__setattr__(self, "seconds", self.seconds + extra)
            object.__setattr__(self, "nanoseconds", nanos)

    @classmethod
    def now(cls) -> Timestamp:
        return cls.from_datetime(datetime.now(UTC))

    @classmethod
    def from_datetime(cls, value: datetime) -> Timestamp:
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        delta = value - datetime(1970, 1, 1, tzinfo=UTC)
        seconds = delta.days * 86400 + delta.seconds
        return cls(seconds=seconds, nanoseconds=delta.microseconds * 1000)

    @classmethod
    def from_millis(cls, millis: int) -> Timestamp:
        seconds, rem = divmod(int(millis), 1000)
        return cls(seconds=seconds, nanoseconds=rem * 1_000_000)

    def to_datetime(self) -> datetime:
        """Native UTC datetime. Sub-microsecond precision is truncated."""
        return datetime.fromtimestamp(self.seconds, UTC).replace(microsecond=self.nanoseconds // 1000)

    def to_millis(self) -> int:
        return self.seconds * 1000 + self.nanoseconds // 1_000_000

    def to_dict(self) -> dict[str, int]:
        return {"seconds": self.seconds, "nanoseconds": self.nanoseconds}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Timestamp:
        return cls(seconds=int(d["seconds"]), nanoseconds=int(d["nanoseconds"]))

    @staticmethod
    def is_encoded(value: Any) -> bool:
        """True if value looks like a persisted Timestamp."""
        return (
            isinstance(value, dict)
            and set(value) == {"seconds", "nanoseconds"}
            and all(isinstance(v, int) and not isinstance(v, bool) for v in value.values())
        )

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Timestamp):
            return NotImplemented
        return (self.seconds, self.nanoseconds) < (other.seconds, other.nanoseconds)


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CollectionRef:
    """Names a collection."""

    path: str

    def doc(self, doc_id: str) -> DocumentRef:
        return DocumentRef(collection=self.path, id=doc_id)


@dataclass(frozen=True)
class DocumentRef:
    """Identifies one document for targeted mutation calls."""

    collection: str
    id: str

    @property
    def parent(self) -> CollectionRef:
        return CollectionRef(self.collection)


def collection(name: str) -> CollectionRef:
    """Build a collection reference."""
    return CollectionRef(name)


def doc(collection_name: str, doc_id: str) -> DocumentRef:
    """Build a document reference."""
    return DocumentRef(collection=collection_name, id=doc_id)


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


class DocumentSnapshot:
    """
    One delivered document. data() hands out a private copy, so a listener
    that mutates it can't reach the store or another listener's view.
    """

    __slots__ = ("ref", "_fields")

    def __init__(self, ref: DocumentRef, fields: dict[str, Any]) -> None:
        self.ref = ref
        self._fields = fields

    @property
    def id(self) -> str:
        return self.ref.id

    def data(self) -> dict[str, Any]:
        return copy.deepcopy(self._fields)

    def get(self, field_name: str, default: Any = None) -> Any:
        return copy.deepcopy(self._fields.get(field_name, default))

    def __repr__(self) -> str:  # pragma: no cover
        return f"DocumentSnapshot({self.ref.collection}/{self.ref.id})"


class QuerySnapshot:
    """Ordered, immutable result of evaluating a query."""

    __slots__ = ("collection", "docs")

    def __init__(self, collection_name: str, documents: list[dict[str, Any]]) -> None:
        self.collection = collection_name
        self.docs: tuple[DocumentSnapshot, ...] = tuple(
            DocumentSnapshot(DocumentRef(collection_name, d["id"]), d) for d in documents
        )

    @property
    def size(self) -> int:
        return len(self.docs)

    @property
    def empty(self) -> bool:
        return not self.docs

    def ids(self) -> list[str]:
        return [d.id for d in self.docs]

    def for_each(self, fn: Callable[[DocumentSnapshot], Any]) -> None:
        for d in self.docs:
            fn(d)

    def __iter__(self) -> Iterator[DocumentSnapshot]:
        return iter(self.docs)

    def __len__(self) -> int:
        return len(self.docs)

    def __repr__(self) -> str:  # pragma: no cover
        return f"QuerySnapshot({self.collection!r}, size={self.size})"


# ---------------------------------------------------------------------------
# Mutation results
# ---------------------------------------------------------------------------


@dataclass
class MutationResult:
    """
    Outcome of one MutationAPI call.
    MutationAPI never raises for NotFound / Validation / Storage failures;
    it always returns one of these.
    """

    ok: bool
    id: str | None = None
    error: str | None = None
    message: str | None = None

    def __bool__(self) -> bool:
        return self.ok


@dataclass
class BatchResult:
    """Per-item outcome of a non-atomic batch of updates."""

    results: list[tuple[DocumentRef, MutationResult]] = field(default_factory=list)

    @property
    def applied(self) -> list[DocumentRef]:
        return [ref for ref, r in self.results if r.ok]

    @property
    def failed(self) -> list[tuple[DocumentRef, MutationResult]]:
        return [(ref, r) for ref, r in self.results if not r.ok]

    @property
    def ok(self) -> bool:
        return all(r.ok for _, r in self.results)

    def __bool__(self) -> bool:
        return self.ok


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def server_timestamp() -> Timestamp:
    """Timestamp for "now", to put in a field at write time (e.g. createdAt)."""
    return Timestamp.now()


def now_iso() -> str:
    """Current UTC time as ISO 8601 string."""
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
