"""
Tests for transaction validation.

The validator is pure: each test builds a record and inspects the
field -> message map it returns.
"""

from decimal import Decimal

import pytest

from expense_ledger.validation import (
    AMOUNT_ERROR,
    TYPE_ERROR,
    TransactionValidator,
    is_iso_instant,
    parse_amount,
    validate_transaction,
)
from expense_ledger.validation.validator import (
    CATEGORY_ERROR,
    DATE_ERROR,
    ID_ERROR,
    TIMESTAMP_ERROR,
)


def complete_record(**overrides):
    record = {
        "id": "lq2x9k3abc",
        "type": "expense",
        "amount": 10000,
        "category": "Food",
        "description": "Groceries",
        "date": "2024-01-05T10:00:00.000Z",
        "timestamp": "2024-01-05T10:00:01.123Z",
        "userId": "alice",
    }
    record.update(overrides)
    return record


class TestRequiredFields:
    """Tests for required field presence."""

    def test_complete_record_is_valid(self):
        """Test that a record with every field passes."""
        result = TransactionValidator().validate(complete_record())
        assert result.is_valid is True
        assert result.errors == {}

    def test_strict_default_requires_identity_fields(self):
        """Test that the default field set requires id, userId and timestamp."""
        record = complete_record()
        for key in ("id", "userId", "timestamp"):
            del record[key]

        result = TransactionValidator().validate(record)

        assert result.is_valid is False
        assert result.errors == {
            "id": "id is required",
            "userId": "userId is required",
            "timestamp": "timestamp is required",
        }

    def test_empty_string_counts_as_missing(self):
        """Test that an empty category is reported as missing."""
        result = TransactionValidator().validate(complete_record(category=""))
        assert result.errors["category"] == "category is required"

    def test_custom_required_fields(self):
        """Test a relaxed required field list."""
        validator = TransactionValidator(required_fields=["type", "amount"])
        result = validator.validate({"type": "income", "amount": "12.50"})
        assert result.is_valid is True

    def test_required_fields_are_copied(self):
        """Test that the validator exposes a copy of its field list."""
        validator = TransactionValidator(required_fields=["type"])
        validator.required_fields.append("amount")
        assert validator.required_fields == ["type"]


class TestAmount:
    """Tests for the amount rule."""

    @pytest.mark.parametrize("amount", [0, -5, -0.01, "abc", "", float("nan"), float("inf"), True])
    def test_invalid_amounts_are_flagged(self, amount):
        """Test that non-positive or non-numeric amounts produce an amount error."""
        result = TransactionValidator().validate(complete_record(amount=amount))
        assert result.is_valid is False
        assert "amount" in result.errors

    def test_zero_amount_message(self):
        """Test that a numeric zero is invalid, not missing."""
        result = TransactionValidator().validate(complete_record(amount=0))
        assert result.errors["amount"] == AMOUNT_ERROR

    def test_numeric_string_amount_is_accepted(self):
        """Test that "12.50" parses as a positive number."""
        result = TransactionValidator().validate(complete_record(amount="12.50"))
        assert result.is_valid is True

    def test_parse_amount(self):
        """Test the amount parser directly."""
        assert parse_amount("12.5") == Decimal("12.5")
        assert parse_amount(3) == Decimal("3")
        assert parse_amount(0.1) == Decimal("0.1")
        assert parse_amount("abc") is None
        assert parse_amount("inf") is None
        assert parse_amount(False) is None
        assert parse_amount(None) is None


class TestFieldRules:
    """Tests for type, category, date and id rules."""

    def test_invalid_type(self):
        """Test that only income and expense are accepted."""
        result = TransactionValidator().validate(complete_record(type="transfer"))
        assert result.errors == {"type": TYPE_ERROR}

    def test_unhashable_type_is_rejected(self):
        """Test that a non-string type does not crash the check."""
        result = TransactionValidator().validate(complete_record(type=["expense"]))
        assert result.errors["type"] == TYPE_ERROR

    def test_blank_category(self):
        """Test that a whitespace-only category is rejected."""
        result = TransactionValidator().validate(complete_record(category="   "))
        assert result.errors == {"category": CATEGORY_ERROR}

    def test_date_without_time_is_rejected(self):
        """Test the fixed-width ISO instant rule."""
        result = TransactionValidator().validate(complete_record(date="2024-01-05"))
        assert result.errors == {"date": DATE_ERROR}

    def test_impossible_date_is_rejected(self):
        """Test that a well-shaped but impossible date fails."""
        result = TransactionValidator().validate(
            complete_record(timestamp="2024-13-45T10:00:00.000Z")
        )
        assert result.errors == {"timestamp": TIMESTAMP_ERROR}

    def test_non_string_id(self):
        """Test that ids must be strings."""
        result = TransactionValidator().validate(complete_record(id=42))
        assert result.errors == {"id": ID_ERROR}

    def test_is_iso_instant(self):
        """Test the ISO instant helper."""
        assert is_iso_instant("2024-01-05T10:00:00.000Z") is True
        assert is_iso_instant("2024-01-05T10:00:00Z") is False
        assert is_iso_instant(20240105) is False


class TestValidationResult:
    """Tests for the validation outcome."""

    def test_all_errors_are_collected(self):
        """Test that every failing field is reported at once."""
        result = validate_transaction(
            complete_record(amount=-1, type="gift", category=" "),
        )
        assert result.error_count == 3
        assert AMOUNT_ERROR in result.summary()

    def test_record_is_not_modified(self):
        """Test that validation never fixes the record."""
        record = complete_record(amount="-1", category="  Food  ")
        before = dict(record)
        TransactionValidator().validate(record)
        assert record == before


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
