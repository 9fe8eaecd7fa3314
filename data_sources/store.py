"""
Document Store - Query interface over the platform datastore.

The platform keeps its data in a document-oriented store. The
engine reads it through a minimal query surface (equality, range
and membership filters plus count) so that the same repository
code runs against the HTTP client in production and against the
in-memory store in tests.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional, Protocol, runtime_checkable

from core.exceptions import DataSourceUnavailableError
from data_sources.models import as_datetime


logger = logging.getLogger(__name__)


# ============================================================
# QUERY TYPES
# ============================================================


SUPPORTED_OPERATORS = ("==", "!=", ">", ">=", "<", "in")


@dataclass(frozen=True)
class Filter:
    """Single field predicate."""
    field: str
    op: str
    value: Any
    
    def __post_init__(self) -> None:
        if self.op not in SUPPORTED_OPERATORS:
            raise ValueError(f"Unsupported operator: {self.op}")
    
    def to_dict(self) -> dict[str, Any]:
        value = self.value
        if isinstance(value, datetime):
            value = value.isoformat()
        elif isinstance(value, (set, frozenset, tuple)):
            value = sorted(value)
        return {"field": self.field, "op": self.op, "value": value}
    
    def matches(self, doc: dict[str, Any]) -> bool:
        actual = doc.get(self.field)
        expected = self.value
        
        if isinstance(expected, datetime):
            actual = as_datetime(actual)
            if actual is None:
                return False
        
        if self.op == "==":
            return actual == expected
        if self.op == "!=":
            return actual != expected
        if self.op == "in":
            return actual in expected
        if actual is None:
            return False
        try:
            if self.op == ">":
                return actual > expected
            if self.op == ">=":
                return actual >= expected
            return actual < expected
        except TypeError:
            return False


def where(field: str, op: str, value: Any) -> Filter:
    return Filter(field=field, op=op, value=value)


# ============================================================
# STORE PROTOCOL
# ============================================================


@runtime_checkable
class DocumentStore(Protocol):
    """Read-only query surface of the platform datastore."""
    
    async def find(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        ...
    
    async def count(self, collection: str, filters: Iterable[Filter] = ()) -> int:
        ...


# ============================================================
# IN-MEMORY STORE
# ============================================================


class InMemoryDocumentStore:
    """
    Dictionary-backed document store.
    
    Used by tests and local runs. `set_available(False)` makes
    every query raise DataSourceUnavailableError, mimicking a
    total datastore outage.
    """
    
    def __init__(self, collections: Optional[dict[str, list[dict[str, Any]]]] = None):
        self._collections: dict[str, list[dict[str, Any]]] = {
            name: [dict(doc) for doc in docs]
            for name, docs in (collections or {}).items()
        }
        self._available = True
    
    def add(self, collection: str, *docs: dict[str, Any]) -> None:
        self._collections.setdefault(collection, []).extend(dict(doc) for doc in docs)
    
    def set_available(self, available: bool) -> None:
        self._available = available
    
    def _check_available(self, collection: str) -> None:
        if not self._available:
            raise DataSourceUnavailableError(
                "In-memory datastore marked unavailable",
                domain=collection,
                operation="query",
            )
    
    async def find(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        self._check_available(collection)
        filters = list(filters)
        docs = [
            dict(doc)
            for doc in self._collections.get(collection, [])
            if all(f.matches(doc) for f in filters)
        ]
        if order_by:
            docs.sort(key=lambda d: _sort_key(d.get(order_by)), reverse=descending)
        if limit is not None:
            docs = docs[:limit]
        return docs
    
    async def count(self, collection: str, filters: Iterable[Filter] = ()) -> int:
        return len(await self.find(collection, filters))


def _sort_key(value: Any) -> tuple:
    parsed = as_datetime(value) if not isinstance(value, (int, float)) else None
    if parsed is not None:
        return (1, parsed.timestamp())
    if isinstance(value, (int, float)):
        return (1, float(value))
    if value is None:
        return (0, 0.0)
    return (2, str(value))


__all__ = [
    "SUPPORTED_OPERATORS",
    "Filter",
    "where",
    "DocumentStore",
    "InMemoryDocumentStore",
]
