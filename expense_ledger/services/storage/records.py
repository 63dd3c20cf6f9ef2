"""
Record helpers shared by every storage implementation.

Backfilling new records, merging patches, turning pydantic errors into
field maps, ownership checks and import-document parsing live here so
the local and API stores apply the exact same rules.
"""

from collections.abc import Mapping
from typing import Any, Optional, Union

from pydantic import ValidationError

from expense_ledger.models.transaction import (
    LedgerDocument,
    Transaction,
    UserSettings,
    generate_id,
    utc_now_iso,
)
from expense_ledger.services.storage.interface import (
    DataImportError,
    TransactionValidationError,
    UnauthorizedError,
    ValidationFailedError,
)
from expense_ledger.validation import TransactionValidator


def as_record(record: Union[Mapping[str, Any], Transaction]) -> dict[str, Any]:
    """Plain camelCase dict from either a mapping or a Transaction."""
    if isinstance(record, Transaction):
        return record.to_record()
    return dict(record)


def pydantic_errors(exc: ValidationError) -> dict[str, str]:
    """Flatten a pydantic ValidationError into {field: message}."""
    errors: dict[str, str] = {}
    for error in exc.errors():
        field = str(error["loc"][0]) if error["loc"] else "record"
        errors.setdefault(field, error["msg"])
    return errors


def prepare_new_record(
    record: Union[Mapping[str, Any], Transaction],
    user_id: str,
) -> dict[str, Any]:
    """Fill in id, timestamp and owner when the caller left them out."""
    data = as_record(record)
    if not data.get("id"):
        data["id"] = generate_id()
    if not data.get("timestamp"):
        data["timestamp"] = utc_now_iso()
    if not data.get("userId"):
        data["userId"] = user_id
    data.pop("lastModified", None)
    return data


def merge_patch(
    existing: Transaction,
    patch: Mapping[str, Any],
) -> dict[str, Any]:
    """Shallow-merge a patch over an existing record; id and owner are kept."""
    merged = {**existing.to_record(), **as_record(patch)}
    merged["id"] = existing.id
    if existing.user_id is not None:
        merged["userId"] = existing.user_id
    merged["lastModified"] = utc_now_iso()
    return merged


def changed_fields(before: Transaction, after: Transaction) -> list[str]:
    old = before.to_record()
    new = after.to_record()
    return sorted(
        key for key in set(old) | set(new)
        if key != "lastModified" and old.get(key) != new.get(key)
    )


def build_transaction(
    data: Mapping[str, Any],
    validator: TransactionValidator,
) -> Transaction:
    """
    Validate a record and build the model.

    Raises:
        TransactionValidationError: With the field -> message map
    """
    result = validator.validate(data)
    if not result.is_valid:
        raise TransactionValidationError(result.errors)
    try:
        return Transaction.model_validate(data)
    except ValidationError as e:
        raise TransactionValidationError(pydantic_errors(e)) from e


def build_settings(data: Mapping[str, Any]) -> UserSettings:
    try:
        return UserSettings.model_validate(dict(data))
    except ValidationError as e:
        raise ValidationFailedError(pydantic_errors(e), message="Invalid settings") from e


def check_owner(
    transaction: Transaction,
    acting_user_id: Optional[str],
) -> None:
    """
    Raise UnauthorizedError if the transaction belongs to someone else.

    Records without an owner are treated as shared.
    """
    if transaction.user_id is not None and transaction.user_id != acting_user_id:
        raise UnauthorizedError(
            f"Transaction {transaction.id} belongs to another user"
        )


def parse_ledger_document(
    document: Union[Mapping[str, Any], LedgerDocument],
    validator: Optional[TransactionValidator] = None,
) -> LedgerDocument:
    """
    Parse an import document, rejecting it as a whole on any problem.

    With a validator every entry must also pass the same field rules as
    a stored transaction (required fields included).

    Raises:
        DataImportError: Missing/non-array transactions, an invalid entry,
                         duplicate ids or invalid settings
    """
    if isinstance(document, LedgerDocument):
        return document
    if not isinstance(document, Mapping):
        raise DataImportError("Invalid ledger document: expected a JSON object")

    raw_transactions = document.get("transactions")
    if not isinstance(raw_transactions, list):
        raise DataImportError("Invalid transactions data")

    transactions: list[Transaction] = []
    seen: set[str] = set()
    for index, raw in enumerate(raw_transactions):
        if not isinstance(raw, Mapping):
            raise DataImportError(f"Invalid transaction at index {index}: expected an object")
        if validator is not None:
            result = validator.validate(raw)
            if not result.is_valid:
                raise DataImportError(f"Invalid transaction at index {index}: {result.summary()}")
        try:
            transaction = Transaction.model_validate(raw)
        except ValidationError as e:
            details = ", ".join(f"{k}: {v}" for k, v in pydantic_errors(e).items())
            raise DataImportError(f"Invalid transaction at index {index}: {details}") from e
        if transaction.id in seen:
            raise DataImportError(f"Duplicate transaction id: {transaction.id}")
        seen.add(transaction.id)
        transactions.append(transaction)

    settings: Optional[UserSettings] = None
    raw_settings = document.get("settings")
    if raw_settings is not None:
        if not isinstance(raw_settings, Mapping):
            raise DataImportError("Invalid settings data")
        try:
            settings = UserSettings.model_validate(dict(raw_settings))
        except ValidationError as e:
            raise DataImportError(f"Invalid settings data: {e.error_count()} errors") from e

    export_date = document.get("exportDate")
    return LedgerDocument(
        transactions=transactions,
        settings=settings,
        export_date=export_date if isinstance(export_date, str) else None,
    )
