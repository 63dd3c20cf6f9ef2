"""
Transactions API Storage

Talks to the small Express/PostgreSQL server the web app ships with:

    POST   /init
    POST   /auth/login            {username, password} -> {success, user|message}
    POST   /transactions
    GET    /transactions
    GET    /transactions/:userId
    PUT    /transactions/:id
    DELETE /transactions/:id
    POST   /transactions/import   [transaction, ...] (upsert by id)

TRADEOFFS:
- The server stores `user_id` in snake_case and returns amounts as strings;
  rows are normalized into Transaction models here
- The server has no settings table, so settings live in this client
- Failed requests surface immediately as PersistenceError. No retries.
"""

import asyncio
from collections.abc import Mapping
from typing import Any, Optional, Union
from urllib.parse import quote

import aiohttp
import structlog
from pydantic import ValidationError

from expense_ledger.audit import AuditLogger, default_audit_logger
from expense_ledger.config import get_settings
from expense_ledger.models.transaction import (
    LedgerDocument,
    Transaction,
    UserSettings,
    money_to_json,
    utc_now_iso,
)
from expense_ledger.services.storage.interface import (
    DataImportError,
    NotFoundError,
    PersistenceError,
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
    pydantic_errors,
)
from expense_ledger.validation import TransactionValidator


logger = structlog.get_logger(__name__)


def row_to_transaction(row: Mapping[str, Any]) -> Transaction:
    """Normalize a server row (snake_case, string amounts) into a Transaction."""
    data = dict(row)
    if "user_id" in data and "userId" not in data:
        data["userId"] = data.pop("user_id")
    if data.get("userId") is not None:
        data["userId"] = str(data["userId"])
    if "last_modified" in data and "lastModified" not in data:
        data["lastModified"] = data.pop("last_modified")
    return Transaction.model_validate(data)


def transaction_to_payload(transaction: Transaction) -> dict[str, Any]:
    """Request body in the server's column naming."""
    return {
        "id": transaction.id,
        "user_id": transaction.user_id,
        "type": transaction.type.value,
        "amount": money_to_json(transaction.amount),
        "category": transaction.category,
        "description": transaction.description,
        "date": transaction.date,
        "timestamp": transaction.timestamp,
    }


class ApiTransactionStorage(TransactionStorageInterface):
    """
    TransactionStorageInterface backed by the transactions HTTP API.

    A shared aiohttp session can be injected; otherwise each request
    opens and closes its own session.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        timeout_seconds: Optional[float] = None,
        validator: Optional[TransactionValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        default_user_id: Optional[str] = None,
        multi_user: Optional[bool] = None,
    ):
        settings = get_settings()
        api_settings = settings.api
        app_settings = settings.app

        self._base_url = (base_url or api_settings.base_url).rstrip("/")
        self._session = session
        self._timeout = aiohttp.ClientTimeout(
            total=timeout_seconds or api_settings.timeout_seconds
        )
        self._validator = validator or TransactionValidator()
        self._audit = audit_logger or default_audit_logger
        self._default_user_id = default_user_id or app_settings.default_user_id
        self._multi_user = app_settings.multi_user if multi_user is None else multi_user
        self._settings = UserSettings(
            currency=app_settings.default_currency,
            theme=app_settings.default_theme,
        )
        self._user: Optional[dict[str, Any]] = None

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Any] = None,
    ) -> Any:
        """
        Send one request and return the decoded JSON body.

        Raises:
            NotFoundError: On 404
            UnauthorizedError: On 401/403
            PersistenceError: On any other failure
        """
        url = f"{self._base_url}{path}"
        try:
            if self._session is not None:
                return await self._send(self._session, method, url, payload)
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                return await self._send(session, method, url, payload)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._audit.log_storage_error(f"{method} {path}", str(e) or type(e).__name__)
            raise PersistenceError(f"Request to {url} failed: {e}") from e

    async def _send(
        self,
        session: aiohttp.ClientSession,
        method: str,
        url: str,
        payload: Optional[Any],
    ) -> Any:
        async with session.request(method, url, json=payload) as response:
            try:
                body = await response.json(content_type=None)
            except ValueError:
                body = None
            status = response.status

        message = body.get("message") if isinstance(body, dict) else None
        if status == 404:
            raise NotFoundError(message or f"Not found: {url}")
        if status in (401, 403):
            raise UnauthorizedError(message or "Unauthorized")
        if status >= 400:
            raise PersistenceError(message or f"{method} {url} returned {status}")
        if isinstance(body, dict) and body.get("success") is False:
            raise PersistenceError(message or f"{method} {url} failed")

        logger.debug("api_request", method=method, url=url, status=status)
        return body

    def _parse_rows(self, body: Any) -> list[Transaction]:
        rows = body.get("transactions") if isinstance(body, dict) else body
        if not isinstance(rows, list):
            raise PersistenceError("Unexpected response: expected a list of transactions")
        try:
            return [row_to_transaction(row) for row in rows]
        except ValidationError as e:
            raise PersistenceError(
                f"Server returned an invalid transaction: {pydantic_errors(e)}"
            ) from e

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @property
    def current_user_id(self) -> str:
        if self._user is not None:
            return str(self._user["id"])
        return self._default_user_id

    @property
    def current_user(self) -> Optional[dict[str, Any]]:
        return self._user

    async def initialize(self) -> None:
        """Ask the server to create its tables."""
        await self._request("POST", "/init")

    async def login(self, username: str, password: str) -> dict[str, Any]:
        """
        Log in against the server and act as that user from now on.

        Raises:
            UnauthorizedError: If the credentials are rejected
        """
        try:
            body = await self._request(
                "POST",
                "/auth/login",
                {"username": username, "password": password},
            )
        except PersistenceError as e:
            # The server reports bad credentials as success: false
            raise UnauthorizedError(str(e)) from e

        user = body.get("user") if isinstance(body, dict) else None
        if not isinstance(user, dict) or "id" not in user:
            raise UnauthorizedError("Invalid username or password")

        self._user = user
        self._audit.log_user_logged_in(str(user["id"]), str(user.get("username", username)))
        return user

    def logout(self) -> None:
        self._user = None

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def list_transactions(
        self,
        user_id: Optional[str] = None,
    ) -> list[Transaction]:
        if user_id is not None:
            body = await self._request("GET", f"/transactions/{quote(user_id, safe='')}")
        else:
            body = await self._request("GET", "/transactions")
        return self._parse_rows(body)

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        for transaction in await self.list_transactions():
            if transaction.id == transaction_id:
                return transaction
        return None

    async def _get_existing(
        self,
        transaction_id: str,
        acting_user_id: Optional[str],
    ) -> Transaction:
        existing = await self.get_transaction(transaction_id)
        if existing is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        if self._multi_user:
            acting = acting_user_id or self.current_user_id
            try:
                check_owner(existing, acting)
            except UnauthorizedError:
                self._audit.log_unauthorized_access(existing.id, existing.user_id, acting)
                raise
        return existing

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

        body = await self._request("POST", "/transactions", transaction_to_payload(transaction))

        row = body.get("transaction") if isinstance(body, dict) else None
        if isinstance(row, Mapping):
            try:
                transaction = row_to_transaction(row)
            except ValidationError:
                logger.warning("unparseable_transaction_echo", transaction_id=transaction.id)

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
        existing = await self._get_existing(transaction_id, acting_user_id)
        merged = merge_patch(existing, patch)
        try:
            updated = build_transaction(merged, self._validator)
        except TransactionValidationError as e:
            self._audit.log_validation_failed(e.errors, transaction_id)
            raise

        await self._request(
            "PUT",
            f"/transactions/{quote(transaction_id, safe='')}",
            transaction_to_payload(updated),
        )

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
        if self._multi_user:
            await self._get_existing(transaction_id, acting_user_id)
        await self._request("DELETE", f"/transactions/{quote(transaction_id, safe='')}")
        self._audit.log_transaction_deleted(
            transaction_id=transaction_id,
            user_id=acting_user_id or self.current_user_id,
        )

    # ------------------------------------------------------------------
    # Settings (client-side)
    # ------------------------------------------------------------------

    async def get_settings(self) -> UserSettings:
        return self._settings.model_copy(deep=True)

    async def update_settings(self, patch: Mapping[str, Any]) -> UserSettings:
        self._settings = build_settings({**self._settings.to_record(), **dict(patch)})
        self._audit.log_settings_updated(sorted(patch))
        return self._settings.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Whole-ledger operations
    # ------------------------------------------------------------------

    async def export_all(self) -> LedgerDocument:
        document = LedgerDocument(
            transactions=await self.list_transactions(),
            settings=self._settings.model_copy(deep=True),
            export_date=utc_now_iso(),
        )
        self._audit.log_data_exported(len(document.transactions))
        return document

    async def import_all(
        self,
        document: Union[Mapping[str, Any], LedgerDocument],
    ) -> LedgerDocument:
        """
        Upsert every transaction in one server-side database transaction.

        Unlike the local stores, ids already on the server are overwritten
        and other rows are kept.
        """
        try:
            parsed = parse_ledger_document(document, self._validator)
        except DataImportError as e:
            self._audit.log_import_failed(str(e))
            raise

        await self._request(
            "POST",
            "/transactions/import",
            [transaction_to_payload(t) for t in parsed.transactions],
        )
        if parsed.settings is not None:
            self._settings = parsed.settings.model_copy(deep=True)

        self._audit.log_data_imported(len(parsed.transactions), parsed.settings is not None)
        return parsed

    async def clear_data(self) -> None:
        """Delete every transaction one by one; the API has no bulk delete."""
        for transaction in await self.list_transactions():
            await self._request("DELETE", f"/transactions/{quote(transaction.id, safe='')}")
        self._settings = UserSettings(
            currency=self._settings.currency,
            theme=get_settings().app.default_theme,
        )
        self._audit.log_data_cleared()
