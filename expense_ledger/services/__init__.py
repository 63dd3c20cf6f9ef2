"""Services package."""

from expense_ledger.services.storage import (
    ApiTransactionStorage,
    DataImportError,
    DuplicateError,
    JsonFileBackend,
    LocalTransactionStorage,
    MemoryBackend,
    NotFoundError,
    PersistenceError,
    StorageError,
    TransactionStorageInterface,
    TransactionValidationError,
    UnauthorizedError,
    build_storage,
)

__all__ = [
    # Interface
    "TransactionStorageInterface",
    # Implementations
    "ApiTransactionStorage",
    "JsonFileBackend",
    "LocalTransactionStorage",
    "MemoryBackend",
    "build_storage",
    # Exceptions
    "DataImportError",
    "DuplicateError",
    "NotFoundError",
    "PersistenceError",
    "StorageError",
    "TransactionValidationError",
    "UnauthorizedError",
]
