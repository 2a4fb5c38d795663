"""Paths, snapshots and queries for the document store."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Any


class ServerTimestamp:
    """Placeholder field value replaced with the store clock when a write is applied."""

    _instance: ServerTimestamp | None = None

    def __new__(cls) -> ServerTimestamp:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"

    def __copy__(self) -> ServerTimestamp:
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> ServerTimestamp:
        return self


SERVER_TIMESTAMP = ServerTimestamp()


def join_path(*segments: str) -> str:
    """Join path segments with '/', rejecting empty segments and embedded separators."""
    for segment in segments:
        if not segment or "/" in segment:
            raise ValueError(f"Invalid path segment: {segment!r}")
    return "/".join(segments)


def document_path(collection: str, document_id: str) -> str:
    """Path of a document inside a (possibly nested) collection, e.g. ``games/abc/players/xyz``."""
    if not document_id or "/" in document_id:
        raise ValueError(f"Invalid document id: {document_id!r}")
    return f"{validate_collection_path(collection)}/{document_id}"


def split_path(path: str) -> tuple[str, str]:
    """Split a document path into (collection path, document id).

    Document paths always have an even number of segments
    (``games/abc``, ``games/abc/players/xyz``).
    """
    segments = path.split("/")
    if len(segments) < 2 or len(segments) % 2 != 0 or not all(segments):  # noqa: PLR2004
        raise ValueError(f"Not a document path: {path!r}")
    return "/".join(segments[:-1]), segments[-1]


def validate_collection_path(path: str) -> str:
    """Return the path unchanged if it names a collection (odd number of segments)."""
    segments = path.split("/")
    if len(segments) % 2 != 1 or not all(segments):
        raise ValueError(f"Not a collection path: {path!r}")
    return path


@dataclass(frozen=True)
class DocumentSnapshot:
    """Point-in-time copy of a document. ``data`` is None when the document does not exist."""

    path: str
    data: dict[str, Any] | None
    version: int = 0

    @property
    def id(self) -> str:
        return self.path.rpartition("/")[2]

    @property
    def exists(self) -> bool:
        return self.data is not None

    def get(self, field: str, default: Any = None) -> Any:  # noqa: ANN401
        if self.data is None:
            return default
        return self.data.get(field, default)


class Direction(StrEnum):
    ASCENDING = "asc"
    DESCENDING = "desc"


@dataclass(frozen=True)
class FieldFilter:
    """Equality filter on a top-level document field."""

    field: str
    value: Any

    def matches(self, data: dict[str, Any]) -> bool:
        return self.field in data and data[self.field] == self.value


@dataclass(frozen=True)
class OrderBy:
    field: str
    direction: Direction = Direction.ASCENDING


@dataclass(frozen=True)
class Query:
    """Collection query with equality filters, ordering and an optional limit.

    Documents missing an ordered-by field are excluded from the result.
    """

    collection: str
    filters: tuple[FieldFilter, ...] = ()
    order_by: tuple[OrderBy, ...] = ()
    limit: int | None = None

    def where(self, field: str, value: Any) -> Query:  # noqa: ANN401
        return replace(self, filters=(*self.filters, FieldFilter(field, value)))

    def order(self, field: str, direction: Direction = Direction.ASCENDING) -> Query:
        return replace(self, order_by=(*self.order_by, OrderBy(field, direction)))

    def limited(self, limit: int) -> Query:
        if limit < 1:
            raise ValueError(f"Query limit must be positive, got {limit}")
        return replace(self, limit=limit)
