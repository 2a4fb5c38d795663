"""Document store abstraction and its in-process implementation."""

from shared.store.errors import DocumentNotFoundError, StoreError, StoreUnavailableError, TransactionAbortedError
from shared.store.memory import InMemoryDocumentStore
from shared.store.models import (
    SERVER_TIMESTAMP,
    Direction,
    DocumentSnapshot,
    FieldFilter,
    OrderBy,
    Query,
    document_path,
    join_path,
    split_path,
)
from shared.store.protocol import DocumentStore, Subscription, Transaction, WriteBatch

__all__ = [
    "SERVER_TIMESTAMP",
    "Direction",
    "DocumentNotFoundError",
    "DocumentSnapshot",
    "DocumentStore",
    "FieldFilter",
    "InMemoryDocumentStore",
    "OrderBy",
    "Query",
    "StoreError",
    "StoreUnavailableError",
    "Subscription",
    "Transaction",
    "TransactionAbortedError",
    "WriteBatch",
    "document_path",
    "join_path",
    "split_path",
]
