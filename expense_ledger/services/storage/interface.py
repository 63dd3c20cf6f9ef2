"""
Abstract Storage Interface

DESIGN DECISION: We define one abstract interface for transaction storage.
The browser versions of this app grew a separate, near-duplicate class per
backend (memory, localStorage, IndexedDB, a REST API). Here they are
implementations of a single interface, so:
1. Business logic never knows which backend it talks to
2. Tests use the in-memory backend
3. A backup backend can be layered under any local store

The interface is intentionally small: the collection operations, settings,
and whole-ledger export/import.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, Optional, Union

from expense_ledger.models.transaction import (
    LedgerDocument,
    Transaction,
    UserSettings,
)


class TransactionStorageInterface(ABC):
    """
    Abstract interface for transaction storage operations.

    All operations are coroutines. Local implementations complete without
    real suspension; the API implementation awaits a network round trip.
    """

    @property
    @abstractmethod
    def current_user_id(self) -> str:
        """Id stamped on new transactions and used for ownership checks."""
        pass

    @abstractmethod
    async def list_transactions(
        self,
        user_id: Optional[str] = None,
    ) -> list[Transaction]:
        """
        List transactions in storage order.

        Args:
            user_id: Only return transactions owned by this user

        Returns:
            List of transactions (no pagination)
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        """
        Retrieve a transaction by its id.

        Returns:
            The transaction if found, None otherwise
        """
        pass

    @abstractmethod
    async def add_transaction(
        self,
        record: Union[Mapping[str, Any], Transaction],
    ) -> Transaction:
        """
        Validate and append a transaction.

        `id`, `timestamp` and `userId` are filled in when absent.

        Returns:
            The stored transaction

        Raises:
            TransactionValidationError: If the record is invalid
            DuplicateError: If an explicit id is already taken
            PersistenceError: If the write fails
        """
        pass

    @abstractmethod
    async def update_transaction(
        self,
        transaction_id: str,
        patch: Mapping[str, Any],
        acting_user_id: Optional[str] = None,
    ) -> Transaction:
        """
        Shallow-merge `patch` into an existing transaction.

        Fields not in the patch are kept; the id never changes;
        `lastModified` is set.

        Returns:
            The updated transaction

        Raises:
            NotFoundError: If the transaction doesn't exist
            UnauthorizedError: If it belongs to another user
            TransactionValidationError: If the merged record is invalid
            PersistenceError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_transaction(
        self,
        transaction_id: str,
        acting_user_id: Optional[str] = None,
    ) -> None:
        """
        Delete a transaction by id.

        Raises:
            NotFoundError: If the transaction doesn't exist
            UnauthorizedError: If it belongs to another user
            PersistenceError: If the write fails
        """
        pass

    @abstractmethod
    async def get_settings(self) -> UserSettings:
        """Get settings, created with defaults on first access."""
        pass

    @abstractmethod
    async def update_settings(self, patch: Mapping[str, Any]) -> UserSettings:
        """
        Shallow-merge `patch` (camelCase keys) into the settings.

        Raises:
            ValidationFailedError: If the merged settings are invalid
            PersistenceError: If the write fails
        """
        pass

    @abstractmethod
    async def export_all(self) -> LedgerDocument:
        """
        Snapshot the full ledger.

        The result must round-trip through import_all.
        """
        pass

    @abstractmethod
    async def import_all(
        self,
        document: Union[Mapping[str, Any], LedgerDocument],
    ) -> LedgerDocument:
        """
        Replace the ledger with `document`.

        Requires an array-typed `transactions` field. Settings are
        replaced only when the document carries them. Nothing changes
        if any part of the document is rejected.

        Returns:
            The parsed document that was applied

        Raises:
            DataImportError: If the document is malformed
            PersistenceError: If the write fails
        """
        pass

    @abstractmethod
    async def clear_data(self) -> None:
        """Remove all transactions and reset settings to defaults."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ValidationFailedError(StorageError):
    """A record failed validation. Carries the field -> message map."""

    def __init__(self, errors: Mapping[str, str], message: str = "Invalid data"):
        self.errors = dict(errors)
        super().__init__(f"{message}: {', '.join(self.errors.values())}")


class TransactionValidationError(ValidationFailedError):
    """A transaction failed validation."""

    def __init__(self, errors: Mapping[str, str]):
        super().__init__(errors, message="Invalid transaction data")


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class UnauthorizedError(StorageError):
    """The acting user does not own the entity (or could not log in)."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class PersistenceError(StorageError):
    """The underlying storage or network call failed."""
    pass


class DataImportError(StorageError):
    """An import document was malformed. Nothing was applied."""
    pass
