"""
Transaction Validation

Every write is gated by field-level checks before it reaches storage.

CHECKS:
- Required field presence (configurable list)
- amount: finite number > 0
- type: exactly "income" or "expense"
- category: non-empty string
- date / timestamp: fixed-width ISO instant YYYY-MM-DDTHH:mm:ss.sssZ
- userId / id: non-empty strings

IMPORTANT: Validation NEVER fixes a record. It reports one message per
failing field and leaves the record untouched.
"""

from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional

import structlog

from expense_ledger.config import get_settings
from expense_ledger.models.transaction import (
    ISO_INSTANT_RE,
    TransactionType,
    ValidationResult,
    parse_instant,
)


logger = structlog.get_logger(__name__)

TRANSACTION_TYPES = {t.value for t in TransactionType}

AMOUNT_ERROR = "Amount must be a positive number"
TYPE_ERROR = "Invalid transaction type"
CATEGORY_ERROR = "Category must be a non-empty string"
DATE_ERROR = "Invalid date format. Must be in ISO format (YYYY-MM-DDTHH:mm:ss.sssZ)"
TIMESTAMP_ERROR = "Invalid timestamp format. Must be in ISO format (YYYY-MM-DDTHH:mm:ss.sssZ)"
USER_ID_ERROR = "User ID must be a non-empty string"
ID_ERROR = "ID must be a non-empty string"


def parse_amount(value: Any) -> Optional[Decimal]:
    """
    Parse an amount to a finite Decimal.

    Returns None for anything that is not a number or numeric string.
    Booleans are rejected even though Python treats them as ints.
    Floats go through their repr, so 0.1 becomes Decimal("0.1").
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, (int, float, str)):
        try:
            number = Decimal(str(value).strip())
        except InvalidOperation:
            return None
    else:
        return None
    if not number.is_finite():
        return None
    return number


def is_iso_instant(value: Any) -> bool:
    """True for strings like 2024-01-05T10:00:00.000Z that name a real instant."""
    if not isinstance(value, str) or not ISO_INSTANT_RE.match(value):
        return False
    try:
        parse_instant(value)
    except ValueError:
        return False
    return True


def _is_missing(value: Any) -> bool:
    # Numeric zero is a present-but-invalid amount, not a missing one.
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return False
    if isinstance(value, str):
        return value == ""
    return not value


def _is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


class TransactionValidator:
    """
    Validates transaction-shaped records.

    Stateless apart from the required field list; safe to share.
    """

    def __init__(self, required_fields: Optional[Iterable[str]] = None):
        """
        Initialize validator.

        Args:
            required_fields: Keys that must be present and non-empty.
                             Defaults to the configured list.
        """
        if required_fields is None:
            required_fields = get_settings().validation.required_fields_list
        self._required_fields = list(required_fields)

    @property
    def required_fields(self) -> list[str]:
        return list(self._required_fields)

    def validate(self, record: Mapping[str, Any]) -> ValidationResult:
        """
        Check a record and collect one error per failing field.

        Args:
            record: Transaction-shaped mapping with camelCase keys

        Returns:
            ValidationResult with is_valid and the field -> message map
        """
        errors: dict[str, str] = {}

        for field in self._required_fields:
            if _is_missing(record.get(field)):
                errors[field] = f"{field} is required"

        # Field checks only run on values that are present
        amount = record.get("amount")
        if not _is_missing(amount):
            number = parse_amount(amount)
            if number is None or number <= 0:
                errors["amount"] = AMOUNT_ERROR

        tx_type = record.get("type")
        if not _is_missing(tx_type) and (
            not isinstance(tx_type, str) or tx_type not in TRANSACTION_TYPES
        ):
            errors["type"] = TYPE_ERROR

        category = record.get("category")
        if not _is_missing(category) and not _is_non_empty_string(category):
            errors["category"] = CATEGORY_ERROR

        date = record.get("date")
        if not _is_missing(date) and not is_iso_instant(date):
            errors["date"] = DATE_ERROR

        timestamp = record.get("timestamp")
        if not _is_missing(timestamp) and not is_iso_instant(timestamp):
            errors["timestamp"] = TIMESTAMP_ERROR

        user_id = record.get("userId")
        if not _is_missing(user_id) and not _is_non_empty_string(user_id):
            errors["userId"] = USER_ID_ERROR

        tx_id = record.get("id")
        if not _is_missing(tx_id) and not _is_non_empty_string(tx_id):
            errors["id"] = ID_ERROR

        result = ValidationResult(is_valid=not errors, errors=errors)
        logger.debug(
            "transaction_validated",
            transaction_id=tx_id if isinstance(tx_id, str) else None,
            is_valid=result.is_valid,
            errors=errors,
        )
        return result


def validate_transaction(
    record: Mapping[str, Any],
    required_fields: Optional[Iterable[str]] = None,
) -> ValidationResult:
    """Validate one record with a throwaway validator."""
    return TransactionValidator(required_fields).validate(record)
