"""Transaction validation package."""

from expense_ledger.validation.validator import (
    AMOUNT_ERROR,
    TYPE_ERROR,
    TransactionValidator,
    is_iso_instant,
    parse_amount,
    validate_transaction,
)

__all__ = [
    "AMOUNT_ERROR",
    "TYPE_ERROR",
    "TransactionValidator",
    "is_iso_instant",
    "parse_amount",
    "validate_transaction",
]
