"""
Local Transaction Storage

DESIGN DECISION: Transactions live in an id-indexed, insertion-ordered map
that is loaded once from a key-value backend and flushed as a whole after
every mutation. Mutations are serialized with an asyncio.Lock, so two
concurrent adds can no longer overwrite each other's blob.

FAILURE POLICY:
- A failed primary flush rolls the in-memory state back and raises
  PersistenceError. Nothing is retried.
- The optional backup backend is written after the primary succeeds.
  A backup failure is logged and never raised.
"""

import asyncio
from collections.abc import Mapping
from typing import Any, Optional, Union

import structlog

from expense_ledger.audit import AuditLogger, default_audit_logger
from expense_ledger.config import get_settings
from expense_ledger.models.transaction import (
    LedgerDocument,
    Transaction,
    UserSettings,
    utc_now_iso,
)
from expense_ledger.services.storage.backends import KeyValueBackend
from expense_ledger.services.storage.interface import (
    DataImportError,
    DuplicateError,
    NotFoundError,
    PersistenceError,
    StorageError,
    TransactionStorageInterface,
    TransactionValidationError,
    UnauthorizedError,
)
from expense_ledger.services.storage.records import (
    build_settings,
    build_transaction,
    changed_fields,
    check_owner,
    merge_patch,
    parse_ledger_document,
    prepare_new_record,
)
from expense_ledger.validation import TransactionValidator


logger = structlog.get_logger(__name__)

TRANSACTIONS_KEY = "transactions"
SETTINGS_KEY = "settings"


class LocalTransactionStorage(TransactionStorageInterface):
    """
    Transaction storage over a primary (and optional backup) key-value backend.

    Collections are namespaced per user (`<username>_transactions`) when a
    username is set, so several people can share one data directory.
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        backup: Optional[KeyValueBackend] = None,
        username: Optional[str] = None,
        validator: Optional[TransactionValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        default_user_id: Optional[str] = None,
        multi_user: Optional[bool] = None,
        default_settings: Optional[UserSettings] = None,
    ):
        app_settings = get_settings().app
        self._backend = backend
        self._backup = backup
        self._username = username
        self._validator = validator or TransactionValidator()
        self._audit = audit_logger or default_audit_logger
        self._default_user_id = default_user_id or app_settings.default_user_id
        self._multi_user = app_settings.multi_user if multi_user is None else multi_user
        self._default_settings = default_settings or UserSettings(
            currency=app_settings.default_currency,
            theme=app_settings.default_theme,
        )

        self._lock = asyncio.Lock()
        self._loaded = False
        self._transactions: dict[str, Transaction] = {}
        self._settings: UserSettings = self._default_settings.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @property
    def current_user_id(self) -> str:
        return self._username or self._default_user_id

    @property
    def username(self) -> Optional[str]:
        return self._username

    async def set_current_user(self, username: Optional[str]) -> None:
        """Switch to another user's namespace; collections reload lazily."""
        async with self._lock:
            self._username = username
            self._loaded = False
            self._transactions = {}
            self._settings = self._default_settings.model_copy(deep=True)

    def _key(self, name: str) -> str:
        if self._username:
            return f"{self._username}_{name}"
        return name

    # ------------------------------------------------------------------
    # Loading and flushing
    # ------------------------------------------------------------------

    async def _load_blob(self, key: str) -> Optional[Any]:
        value = await self._backend.load(key)
        if value is None and self._backup is not None:
            try:
                value = await self._backup.load(key)
            except StorageError as e:
                self._audit.log_backup_failed(key, str(e))
                return None
            if value is not None:
                logger.warning("restored_from_backup", key=key)
        return value

    async def _ensure_loaded(self) -> None:
        """Load both collections on first use. Caller holds the lock."""
        if self._loaded:
            return

        raw_transactions = await self._load_blob(self._key(TRANSACTIONS_KEY))
        raw_settings = await self._load_blob(self._key(SETTINGS_KEY))

        try:
            document = parse_ledger_document({
                "transactions": raw_transactions if raw_transactions is not None else [],
                "settings": raw_settings,
            })
        except DataImportError as e:
            self._audit.log_storage_error("load", str(e))
            raise PersistenceError(f"Stored ledger is corrupt: {e}") from e

        self._transactions = {t.id: t for t in document.transactions}
        self._settings = document.settings or self._default_settings.model_copy(deep=True)
        self._loaded = True

        # Create the collections with defaults on first access
        if raw_transactions is None:
            await self._flush_transactions()
        if raw_settings is None:
            await self._flush_settings()

    async def _save(self, key: str, value: Any) -> None:
        try:
            await self._backend.save(key, value)
        except StorageError as e:
            self._audit.log_storage_error(f"save {key}", str(e))
            if isinstance(e, PersistenceError):
                raise
            raise PersistenceError(str(e)) from e

        if self._backup is not None:
            try:
                await self._backup.save(key, value)
            except StorageError as e:
                self._audit.log_backup_failed(key, str(e))

    async def _flush_transactions(self) -> None:
        await self._save(
            self._key(TRANSACTIONS_KEY),
            [t.to_record() for t in self._transactions.values()],
        )

    async def _flush_settings(self) -> None:
        await self._save(self._key(SETTINGS_KEY), self._settings.to_record())

    async def _commit_transactions(self, previous: dict[str, Transaction]) -> None:
        """Flush, restoring `previous` in memory if the write fails."""
        try:
            await self._flush_transactions()
        except PersistenceError:
            self._transactions = previous
            raise

    def _owner_check(self, transaction: Transaction, acting_user_id: Optional[str]) -> None:
        if not self._multi_user:
            return
        acting = acting_user_id or self.current_user_id
        try:
            check_owner(transaction, acting)
        except UnauthorizedError:
            self._audit.log_unauthorized_access(transaction.id, transaction.user_id, acting)
            raise

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def list_transactions(
        self,
        user_id: Optional[str] = None,
    ) -> list[Transaction]:
        async with self._lock:
            await self._ensure_loaded()
            transactions = list(self._transactions.values())
        if user_id is not None:
            transactions = [t for t in transactions if t.user_id == user_id]
        return transactions

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        async with self._lock:
            await self._ensure_loaded()
            return self._transactions.get(transaction_id)

    async def add_transaction(
        self,
        record: Union[Mapping[str, Any], Transaction],
    ) -> Transaction:
        data = prepare_new_record(record, self.current_user_id)
        try:
            transaction = build_transaction(data, self._validator)
        except TransactionValidationError as e:
            self._audit.log_validation_failed(e.errors, data.get("id"))
            raise

        async with self._lock:
            await self._ensure_loaded()
            if transaction.id in self._transactions:
                raise DuplicateError(f"Transaction {transaction.id} already exists")
            previous = dict(self._transactions)
            self._transactions[transaction.id] = transaction
            await self._commit_transactions(previous)

        self._audit.log_transaction_added(
            transaction_id=transaction.id,
            transaction_type=transaction.type.value,
            amount=transaction.amount,
            category=transaction.category,
            user_id=transaction.user_id,
        )
        return transaction

    async def update_transaction(
        self,
        transaction_id: str,
        patch: Mapping[str, Any],
        acting_user_id: Optional[str] = None,
    ) -> Transaction:
        async with self._lock:
            await self._ensure_loaded()
            existing = self._transactions.get(transaction_id)
            if existing is None:
                raise NotFoundError(f"Transaction {transaction_id} not found")
            self._owner_check(existing, acting_user_id)

            merged = merge_patch(existing, patch)
            try:
                updated = build_transaction(merged, self._validator)
            except TransactionValidationError as e:
                self._audit.log_validation_failed(e.errors, transaction_id)
                raise

            previous = dict(self._transactions)
            self._transactions[transaction_id] = updated
            await self._commit_transactions(previous)

        self._audit.log_transaction_updated(
            transaction_id=transaction_id,
            changed_fields=changed_fields(existing, updated),
            user_id=acting_user_id or self.current_user_id,
        )
        return updated

    async def delete_transaction(
        self,
        transaction_id: str,
        acting_user_id: Optional[str] = None,
    ) -> None:
        async with self._lock:
            await self._ensure_loaded()
            existing = self._transactions.get(transaction_id)
            if existing is None:
                raise NotFoundError(f"Transaction {transaction_id} not found")
            self._owner_check(existing, acting_user_id)

            previous = dict(self._transactions)
            del self._transactions[transaction_id]
            await self._commit_transactions(previous)

        self._audit.log_transaction_deleted(
            transaction_id=transaction_id,
            user_id=acting_user_id or self.current_user_id,
        )

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    async def get_settings(self) -> UserSettings:
        async with self._lock:
            await self._ensure_loaded()
            return self._settings.model_copy(deep=True)

    async def update_settings(self, patch: Mapping[str, Any]) -> UserSettings:
        async with self._lock:
            await self._ensure_loaded()
            updated = build_settings({**self._settings.to_record(), **dict(patch)})
            previous = self._settings
            self._settings = updated
            try:
                await self._flush_settings()
            except PersistenceError:
                self._settings = previous
                raise

        self._audit.log_settings_updated(sorted(patch))
        return updated.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Whole-ledger operations
    # ------------------------------------------------------------------

    async def export_all(self) -> LedgerDocument:
        async with self._lock:
            await self._ensure_loaded()
            document = LedgerDocument(
                transactions=list(self._transactions.values()),
                settings=self._settings.model_copy(deep=True),
                export_date=utc_now_iso(),
            )
        self._audit.log_data_exported(len(document.transactions))
        return document

    async def import_all(
        self,
        document: Union[Mapping[str, Any], LedgerDocument],
    ) -> LedgerDocument:
        try:
            parsed = parse_ledger_document(document, self._validator)
        except DataImportError as e:
            self._audit.log_import_failed(str(e))
            raise

        async with self._lock:
            await self._ensure_loaded()
            await self._replace(
                {t.id: t for t in parsed.transactions},
                parsed.settings,
            )

        self._audit.log_data_imported(len(parsed.transactions), parsed.settings is not None)
        return parsed

    async def clear_data(self) -> None:
        async with self._lock:
            await self._ensure_loaded()
            await self._replace({}, self._default_settings.model_copy(deep=True))
        self._audit.log_data_cleared()

    async def _replace(
        self,
        transactions: dict[str, Transaction],
        settings: Optional[UserSettings],
    ) -> None:
        """
        Swap in a new collection (and settings) as one unit.

        If the settings write fails after the transactions were written,
        the previous transactions are written back. Caller holds the lock.
        """
        previous_transactions = self._transactions
        previous_settings = self._settings

        self._transactions = transactions
        await self._commit_transactions(previous_transactions)

        if settings is None:
            return

        self._settings = settings
        try:
            await self._flush_settings()
        except PersistenceError:
            self._settings = previous_settings
            self._transactions = previous_transactions
            try:
                await self._flush_transactions()
            except PersistenceError as e:
                self._audit.log_storage_error("rollback", str(e))
            raise
