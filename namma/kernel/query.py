"""
Namma Kernel — Query Engine

Pure function: (documents, query) → ordered documents
No IO. Deterministic: same input → same output, always. The subscription
registry re-runs it on every relevant mutation.

Filtering is conjunctive equality only. Sorting uses natural ordering per
runtime type; documents missing the sort field come last in input order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from namma.kernel.types import CollectionRef, KernelError, Timestamp

Direction = Literal["asc", "desc"]


class UnsupportedOperator(KernelError):
    """A filter used an operator other than '=='."""

    pass


# ---------------------------------------------------------------------------
# Query shapes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Where:
    field: str
    value: Any


@dataclass(frozen=True)
class OrderBy:
    field: str
    direction: Direction = "asc"


@dataclass(frozen=True)
class Query:
    """{collection, equality filters, optional sort}."""

    collection: str
    filters: tuple[Where, ...] = ()
    order: OrderBy | None = None

    def where(self, field: str, op: str, value: Any) -> Query:
        return Query(self.collection, self.filters + (where(field, op, value),), self.order)

    def order_by(self, field: str, direction: Direction = "asc") -> Query:
        return Query(self.collection, self.filters, order_by(field, direction))


def where(field: str, op: str, value: Any) -> Where:
    if op != "==":
        raise UnsupportedOperator(f"Only '==' filters are supported, got {op!r} on '{field}'")
    return Where(field, value)


def order_by(field: str, direction: str = "asc") -> OrderBy:
    if direction not in ("asc", "desc"):
        raise ValueError(f"direction must be 'asc' or 'desc', got {direction!r}")
    return OrderBy(field, direction)  # type: ignore[arg-type]


def query(source: CollectionRef | str, *constraints: Where | OrderBy) -> Query:
    """
    Build a query from a collection and constraints, e.g.

        query(collection("tasks"), where("workspaceId", "==", "w1"), order_by("createdAt", "desc"))

    The last order_by wins.
    """
    name = source.path if isinstance(source, CollectionRef) else source
    filters: list[Where] = []
    order: OrderBy | None = None
    for c in constraints:
        if isinstance(c, Where):
            filters.append(c)
        elif isinstance(c, OrderBy):
            order = c
        else:
            raise TypeError(f"Unknown query constraint: {c!r}")
    return Query(name, tuple(filters), order)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def matches(document: dict[str, Any], filters: tuple[Where, ...]) -> bool:
    """True if the document equals every filter. A missing field never matches."""
    for f in filters:
        if f.field not in document or not _equal(document[f.field], f.value):
            return False
    return True


def sort_key(value: Any) -> tuple[int, Any]:
    """
    Natural ordering key. Values are grouped by runtime type first so mixed
    types never compare against each other:
      numbers < strings < timestamps < everything else (by repr)
    """
    if isinstance(value, (int, float)):
        return (0, value)
    if isinstance(value, str):
        return (1, value)
    if isinstance(value, Timestamp):
        return (2, (value.seconds, value.nanoseconds))
    return (3, repr(value))


def apply_filter(documents: list[dict[str, Any]], filters: tuple[Where, ...]) -> list[dict[str, Any]]:
    if not filters:
        return list(documents)
    return [d for d in documents if matches(d, filters)]


def apply_sort(documents: list[dict[str, Any]], order: OrderBy | None) -> list[dict[str, Any]]:
    """Stable sort. Documents without the field (or with None) go last, in input order."""
    if order is None:
        return list(documents)
    present = [d for d in documents if d.get(order.field) is not None]
    missing = [d for d in documents if d.get(order.field) is None]
    present.sort(key=lambda d: sort_key(d[order.field]), reverse=order.direction == "desc")
    return present + missing


def evaluate(documents: list[dict[str, Any]], q: Query) -> list[dict[str, Any]]:
    """Filter then sort. Input is never modified."""
    return apply_sort(apply_filter(documents, q.filters), q.order)


def _equal(a: Any, b: Any) -> bool:
    # True == 1 in Python; a boolean filter must only match booleans
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    return a == b
