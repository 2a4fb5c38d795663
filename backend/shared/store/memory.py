"""In-process document store with optimistic transactions and push subscriptions."""

from __future__ import annotations

import asyncio
import copy
import itertools
import time
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

import structlog

from shared.store.errors import DocumentNotFoundError, StoreError, TransactionAbortedError
from shared.store.models import (
    Direction,
    DocumentSnapshot,
    ServerTimestamp,
    document_path,
    split_path,
    validate_collection_path,
)
from shared.store.protocol import DocumentStore, Subscription, Transaction, Write, WriteKind

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from shared.store.models import Query

logger = structlog.get_logger()

T = TypeVar("T")

# Smallest gap between two commit timestamps, keeps createdAt strictly increasing.
_TIMESTAMP_STEP = 1e-6

_DOCUMENT_ID_LENGTH = 20


def _random_id() -> str:
    return uuid.uuid4().hex[:_DOCUMENT_ID_LENGTH]


def _resolve_server_values(value: Any, timestamp: float) -> Any:  # noqa: ANN401
    """Return a copy of ``value`` with every SERVER_TIMESTAMP replaced by ``timestamp``."""
    if isinstance(value, ServerTimestamp):
        return timestamp
    if isinstance(value, dict):
        return {key: _resolve_server_values(item, timestamp) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [_resolve_server_values(item, timestamp) for item in value]
    return value


@dataclass
class _Watch:
    watch_id: int
    on_snapshot: Callable[[Any], None]
    on_error: Callable[[Exception], None] | None
    path: str | None = None
    query: Query | None = None
    last_fingerprint: tuple[Any, ...] | None = None


class InMemoryDocumentStore(DocumentStore):
    """Document store held in process memory.

    Every operation awaits once (sleeping ``latency_seconds``) before touching
    state, so concurrent commands interleave the way they would against a
    remote store. Writes are applied without any further await, which makes
    each batch and each transaction commit atomic.

    Subscribers receive the current state immediately on registration and
    then one delivery per committed change that alters what they watch.
    """

    def __init__(
        self,
        *,
        latency_seconds: float = 0.0,
        max_attempts: int = 5,
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        self._documents: dict[str, dict[str, Any]] = {}
        self._versions: dict[str, int] = {}  # survives deletes so a recreated doc gets a new version
        self._watches: dict[int, _Watch] = {}
        self._watch_ids = itertools.count(1)
        self._latency_seconds = latency_seconds
        self._max_attempts = max_attempts
        self._clock = clock
        self._id_factory = id_factory or _random_id
        self._last_timestamp = 0.0

    @property
    def subscription_count(self) -> int:
        return len(self._watches)

    @property
    def document_count(self) -> int:
        return len(self._documents)

    async def get(self, path: str) -> DocumentSnapshot:
        split_path(path)
        await self._pause()
        return self._snapshot(path)

    async def query(self, query: Query) -> list[DocumentSnapshot]:
        validate_collection_path(query.collection)
        await self._pause()
        return self._evaluate(query)

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        validate_collection_path(collection)
        path = document_path(collection, self._id_factory())
        while path in self._versions:
            path = document_path(collection, self._id_factory())
        await self.apply_writes([Write(WriteKind.SET, path, dict(data))])
        return split_path(path)[1]

    async def apply_writes(self, writes: Sequence[Write]) -> None:
        await self._pause()
        self._commit(writes)

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        for attempt in range(1, self._max_attempts + 1):
            transaction = Transaction(self)
            result = await fn(transaction)
            await self._pause()
            if self._is_current(transaction.read_versions):
                self._commit(transaction.writes)
                return result
            logger.debug("transaction conflict, retrying", attempt=attempt)
        raise TransactionAbortedError(self._max_attempts)

    def watch_document(
        self,
        path: str,
        on_snapshot: Callable[[DocumentSnapshot], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Subscription:
        split_path(path)
        return self._register(_Watch(next(self._watch_ids), on_snapshot, on_error, path=path))

    def watch_query(
        self,
        query: Query,
        on_snapshot: Callable[[list[DocumentSnapshot]], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Subscription:
        validate_collection_path(query.collection)
        return self._register(_Watch(next(self._watch_ids), on_snapshot, on_error, query=query))

    def _register(self, watch: _Watch) -> Subscription:
        self._watches[watch.watch_id] = watch

        def _unregister() -> None:
            self._watches.pop(watch.watch_id, None)

        subscription = Subscription(_unregister)
        self._deliver(watch)
        return subscription

    async def _pause(self) -> None:
        await asyncio.sleep(self._latency_seconds)

    def _snapshot(self, path: str) -> DocumentSnapshot:
        data = self._documents.get(path)
        return DocumentSnapshot(
            path=path,
            data=copy.deepcopy(data) if data is not None else None,
            version=self._versions.get(path, 0),
        )

    def _evaluate(self, query: Query) -> list[DocumentSnapshot]:
        paths = [
            path
            for path, data in self._documents.items()
            if split_path(path)[0] == query.collection and all(f.matches(data) for f in query.filters)
        ]
        # Stable sorts applied from the last ordering key to the first.
        for order in reversed(query.order_by):
            paths = [path for path in paths if order.field in self._documents[path]]
            try:
                paths.sort(
                    key=lambda path, field=order.field: self._documents[path][field],
                    reverse=order.direction is Direction.DESCENDING,
                )
            except TypeError as exc:
                raise StoreError(f"cannot order {query.collection} by {order.field}") from exc
        if query.limit is not None:
            paths = paths[: query.limit]
        return [self._snapshot(path) for path in paths]

    def _is_current(self, read_versions: dict[str, int]) -> bool:
        return all(self._versions.get(path, 0) == version for path, version in read_versions.items())

    def _next_timestamp(self) -> float:
        now = self._clock()
        if now <= self._last_timestamp:
            now = self._last_timestamp + _TIMESTAMP_STEP
        self._last_timestamp = now
        return now

    def _commit(self, writes: Sequence[Write]) -> None:
        """Validate every write against current state, then apply them all."""
        staged: dict[str, dict[str, Any] | None] = {}
        for write in writes:
            split_path(write.path)
            current = staged[write.path] if write.path in staged else self._documents.get(write.path)
            if write.kind is WriteKind.SET:
                staged[write.path] = dict(write.data or {})
            elif write.kind is WriteKind.UPDATE:
                if current is None:
                    raise DocumentNotFoundError(write.path)
                staged[write.path] = {**current, **(write.data or {})}
            else:
                staged[write.path] = None

        if not staged:
            return

        timestamp = self._next_timestamp()
        for path, data in staged.items():
            if data is None:
                self._documents.pop(path, None)
            else:
                self._documents[path] = _resolve_server_values(data, timestamp)
            self._versions[path] = self._versions.get(path, 0) + 1

        self._notify(set(staged))

    def _notify(self, paths: set[str]) -> None:
        collections = {split_path(path)[0] for path in paths}
        for watch in list(self._watches.values()):
            if watch.path is not None and watch.path in paths:
                self._deliver(watch)
            elif watch.query is not None and watch.query.collection in collections:
                self._deliver(watch)

    def _deliver(self, watch: _Watch) -> None:
        if watch.watch_id not in self._watches:
            return

        value: DocumentSnapshot | list[DocumentSnapshot]
        if watch.path is not None:
            value = self._snapshot(watch.path)
            fingerprint: tuple[Any, ...] = (value.version,)
        elif watch.query is not None:
            try:
                value = self._evaluate(watch.query)
            except StoreError as exc:
                self._report_error(watch, exc)
                return
            fingerprint = tuple((snapshot.path, snapshot.version) for snapshot in value)
        else:
            return

        if fingerprint == watch.last_fingerprint:
            return
        watch.last_fingerprint = fingerprint

        try:
            watch.on_snapshot(value)
        except Exception:
            logger.exception("subscriber callback failed", watch_id=watch.watch_id)

    def _report_error(self, watch: _Watch, exc: StoreError) -> None:
        if watch.on_error is None:
            logger.warning("subscription read failed", watch_id=watch.watch_id, error=str(exc))
            return
        try:
            watch.on_error(exc)
        except Exception:
            logger.exception("subscriber error callback failed", watch_id=watch.watch_id)
