"""Transaction storage implementations."""

from expense_ledger.services.storage.interface import (
    DataImportError,
    DuplicateError,
    NotFoundError,
    PersistenceError,
    StorageError,
    TransactionStorageInterface,
    TransactionValidationError,
    UnauthorizedError,
    ValidationFailedError,
)
from expense_ledger.services.storage.backends import (
    JsonFileBackend,
    KeyValueBackend,
    MemoryBackend,
)
from expense_ledger.services.storage.local import LocalTransactionStorage
from expense_ledger.services.storage.api import ApiTransactionStorage
from expense_ledger.services.storage.factory import build_storage

__all__ = [
    "ApiTransactionStorage",
    "DataImportError",
    "DuplicateError",
    "JsonFileBackend",
    "KeyValueBackend",
    "LocalTransactionStorage",
    "MemoryBackend",
    "NotFoundError",
    "PersistenceError",
    "StorageError",
    "TransactionStorageInterface",
    "TransactionValidationError",
    "UnauthorizedError",
    "ValidationFailedError",
    "build_storage",
]
