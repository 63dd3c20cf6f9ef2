"""
Storage factory.

Picks the TransactionStorageInterface implementation named by
LEDGER_STORAGE_BACKEND and wires it to its backends.
"""

from typing import Optional

from expense_ledger.config import Settings, get_settings
from expense_ledger.services.storage.api import ApiTransactionStorage
from expense_ledger.services.storage.backends import JsonFileBackend, MemoryBackend
from expense_ledger.services.storage.interface import TransactionStorageInterface
from expense_ledger.services.storage.local import LocalTransactionStorage


def build_storage(settings: Optional[Settings] = None) -> TransactionStorageInterface:
    """
    Build the configured transaction store.

    Args:
        settings: Settings to use (defaults to the cached application settings)

    Returns:
        A memory, file or API backed store

    Raises:
        ValueError: If the configured backend is unknown
    """
    settings = settings or get_settings()
    storage_settings = settings.storage

    if storage_settings.backend == "memory":
        return LocalTransactionStorage(
            MemoryBackend(),
            username=storage_settings.username,
        )

    if storage_settings.backend == "file":
        backup = None
        if storage_settings.backup_dir is not None:
            backup = JsonFileBackend(storage_settings.backup_dir)
        return LocalTransactionStorage(
            JsonFileBackend(storage_settings.data_dir),
            backup=backup,
            username=storage_settings.username,
        )

    if storage_settings.backend == "api":
        api_settings = settings.api
        return ApiTransactionStorage(
            base_url=api_settings.base_url,
            timeout_seconds=api_settings.timeout_seconds,
        )

    raise ValueError(f"Unknown storage backend: {storage_settings.backend}")
