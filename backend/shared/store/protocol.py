"""Abstract document store contract: reads, queries, batches, transactions and subscriptions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, TypeVar

from shared.store.errors import StoreError
from shared.store.models import split_path

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence
    from types import TracebackType

    from shared.store.models import DocumentSnapshot, Query

T = TypeVar("T")


class WriteKind(StrEnum):
    SET = "set"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class Write:
    """A single buffered mutation. ``data`` is the full document for SET, the changed fields for UPDATE."""

    kind: WriteKind
    path: str
    data: dict[str, Any] | None = None


class Subscription:
    """Handle for a live watch. Closing it stops delivery; closing twice is a no-op."""

    def __init__(self, on_close: Callable[[], None]) -> None:
        self._on_close: Callable[[], None] | None = on_close

    @property
    def active(self) -> bool:
        return self._on_close is not None

    def close(self) -> None:
        on_close, self._on_close = self._on_close, None
        if on_close is not None:
            on_close()

    def __enter__(self) -> Subscription:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


class _WriteBuffer:
    def __init__(self) -> None:
        self._writes: list[Write] = []

    @property
    def writes(self) -> list[Write]:
        return list(self._writes)

    def _buffer(self, write: Write) -> None:
        split_path(write.path)
        self._writes.append(write)

    def set(self, path: str, data: dict[str, Any]) -> None:
        self._buffer(Write(WriteKind.SET, path, dict(data)))

    def update(self, path: str, fields: dict[str, Any]) -> None:
        self._buffer(Write(WriteKind.UPDATE, path, dict(fields)))

    def delete(self, path: str) -> None:
        self._buffer(Write(WriteKind.DELETE, path))


class WriteBatch(_WriteBuffer):
    """Collects writes and applies them all-or-nothing on commit. No reads."""

    def __init__(self, store: DocumentStore) -> None:
        super().__init__()
        self._store = store
        self._committed = False

    async def commit(self) -> None:
        if self._committed:
            raise StoreError("batch already committed")
        self._committed = True
        await self._store.apply_writes(self._writes)


class Transaction(_WriteBuffer):
    """Single read-modify-write unit.

    Reads record the version of each document they observe. The store only
    commits the buffered writes if none of those versions changed in the
    meantime; otherwise the transaction function is run again.
    """

    def __init__(self, store: DocumentStore) -> None:
        super().__init__()
        self._store = store
        self._read_versions: dict[str, int] = {}

    @property
    def read_versions(self) -> dict[str, int]:
        return dict(self._read_versions)

    async def get(self, path: str) -> DocumentSnapshot:
        if self._writes:
            raise StoreError("transaction reads must happen before writes")
        snapshot = await self._store.get(path)
        self._read_versions.setdefault(path, snapshot.version)
        return snapshot


class DocumentStore(ABC):
    """Contract for the replicated document store the game is built on.

    Snapshots delivered to a subscription never go backwards in time, but
    separate subscriptions are not ordered relative to each other.
    """

    @abstractmethod
    async def get(self, path: str) -> DocumentSnapshot: ...

    @abstractmethod
    async def query(self, query: Query) -> list[DocumentSnapshot]: ...

    @abstractmethod
    async def add(self, collection: str, data: dict[str, Any]) -> str:
        """Create a document with a store-assigned id and return the id."""

    @abstractmethod
    async def apply_writes(self, writes: Sequence[Write]) -> None:
        """Apply writes atomically: either all land or none do."""

    @abstractmethod
    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        """Run ``fn`` with retry-on-conflict and commit its writes atomically.

        Exceptions raised by ``fn`` abort the transaction and propagate unchanged.
        """

    @abstractmethod
    def watch_document(
        self,
        path: str,
        on_snapshot: Callable[[DocumentSnapshot], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Subscription: ...

    @abstractmethod
    def watch_query(
        self,
        query: Query,
        on_snapshot: Callable[[list[DocumentSnapshot]], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Subscription: ...

    async def set(self, path: str, data: dict[str, Any]) -> None:
        await self.apply_writes([Write(WriteKind.SET, path, dict(data))])

    async def update(self, path: str, fields: dict[str, Any]) -> None:
        await self.apply_writes([Write(WriteKind.UPDATE, path, dict(fields))])

    async def delete(self, path: str) -> None:
        await self.apply_writes([Write(WriteKind.DELETE, path)])

    def batch(self) -> WriteBatch:
        return WriteBatch(self)
