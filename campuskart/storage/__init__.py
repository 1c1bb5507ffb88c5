"""Document storage with optimistic transactions and change triggers."""

from campuskart.storage.document_store import (
    DELETE_FIELD,
    DocumentNotFound,
    DocumentStore,
    StorageCorrupted,
    Transaction,
    TransactionAborted,
    TransactionConflict,
    TransactionError,
)
from campuskart.storage.triggers import ChangeEvent, TriggerRegistry

__all__ = [
    "DELETE_FIELD",
    "ChangeEvent",
    "DocumentNotFound",
    "DocumentStore",
    "StorageCorrupted",
    "Transaction",
    "TransactionAborted",
    "TransactionConflict",
    "TransactionError",
    "TriggerRegistry",
]
