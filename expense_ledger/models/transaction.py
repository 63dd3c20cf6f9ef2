"""
Core Data Models for Expense Ledger

These models define the schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Serialize to the camelCase JSON document used for storage and backups
3. Round-trip exactly through export and import

DESIGN DECISION: Models are pydantic v2. Field names are snake_case in
Python and camelCase on the wire (aliases), so stored documents stay
compatible with the browser versions of the app.
"""

import json
import random
import re
import time
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
)


# Fixed-width ISO instant: exactly three fractional digits and a trailing Z.
ISO_INSTANT_PATTERN = r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$"
ISO_INSTANT_RE = re.compile(ISO_INSTANT_PATTERN)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


# =============================================================================
# ENUMS AND CONSTANTS
# =============================================================================

class TransactionType(str, Enum):
    """Determines the sign of a transaction in every aggregation."""
    INCOME = "income"
    EXPENSE = "expense"


class Theme(str, Enum):
    LIGHT = "light"
    DARK = "dark"
    SYSTEM = "system"


# Suggestions only. Any non-empty category is accepted.
EXPENSE_CATEGORIES = [
    "Food",
    "Transportation",
    "Housing",
    "Utilities",
    "Healthcare",
    "Entertainment",
    "Shopping",
    "Education",
    "Personal Care",
    "Insurance",
    "Savings",
    "Other",
]

INCOME_CATEGORIES = [
    "Salary",
    "Business",
    "Investments",
    "Freelance",
    "Rental",
    "Other",
]

CATEGORIES = {
    TransactionType.EXPENSE.value: EXPENSE_CATEGORIES,
    TransactionType.INCOME.value: INCOME_CATEGORIES,
}


# =============================================================================
# HELPERS
# =============================================================================

def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_id() -> str:
    """
    Generate a time-based transaction id.

    Base-36 milliseconds since the epoch followed by a random base-36
    suffix, so ids created in the same millisecond still differ.
    """
    millis = int(time.time() * 1000)
    suffix = _to_base36(random.getrandbits(48))
    return f"{_to_base36(millis)}{suffix}"


def format_instant(moment: datetime) -> str:
    """Format a datetime as YYYY-MM-DDTHH:mm:ss.sssZ (UTC)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def utc_now_iso() -> str:
    """Current time as a strict ISO instant."""
    return format_instant(datetime.now(timezone.utc))


def money_to_json(value: Decimal) -> Union[int, float]:
    """JSON number for a money amount: int when whole, float otherwise."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


# Amounts are Decimal in Python and plain numbers in the JSON document.
Money = Annotated[Decimal, PlainSerializer(money_to_json, when_used="json")]


def parse_instant(value: str) -> datetime:
    """Parse an ISO instant (trailing Z allowed) into an aware UTC datetime."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


# =============================================================================
# TRANSACTION
# =============================================================================

class Transaction(BaseModel):
    """
    A single income or expense record.

    Only records that passed the TransactionValidator are built into
    this model by the stores; imports are parsed straight into it.
    """
    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
        frozen=True,
    )

    id: str = Field(
        ...,
        min_length=1,
        description="Opaque unique id, immutable"
    )
    type: TransactionType
    amount: Money = Field(
        ...,
        gt=0,
        allow_inf_nan=False,
        description="Currency-agnostic magnitude"
    )
    category: str = Field(
        ...,
        min_length=1,
        max_length=100,
    )
    description: str = Field(
        default="",
        max_length=1000,
    )
    date: str = Field(
        ...,
        pattern=ISO_INSTANT_PATTERN,
        description="User-facing transaction time"
    )
    timestamp: str = Field(
        ...,
        pattern=ISO_INSTANT_PATTERN,
        description="Creation time"
    )
    user_id: Optional[str] = Field(
        default=None,
        alias="userId",
    )
    last_modified: Optional[str] = Field(
        default=None,
        alias="lastModified",
        pattern=ISO_INSTANT_PATTERN,
    )

    @field_validator('description', mode='before')
    @classmethod
    def none_description_is_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator('date', 'timestamp', 'last_modified')
    @classmethod
    def instant_must_exist(cls, v: Optional[str]) -> Optional[str]:
        """The pattern admits 2024-02-30; the calendar does not."""
        if v is not None:
            parse_instant(v)
        return v

    @property
    def is_income(self) -> bool:
        return self.type == TransactionType.INCOME

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.EXPENSE

    @property
    def occurred_at(self) -> datetime:
        """The transaction date as an aware UTC datetime."""
        return parse_instant(self.date)

    def to_record(self) -> dict[str, Any]:
        """Plain camelCase dict, as stored and exported."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# =============================================================================
# SETTINGS
# =============================================================================

class UserSettings(BaseModel):
    """
    Per-user preferences.

    Created with defaults on first access, updated by shallow merge.
    Unknown keys are kept so they survive a backup round-trip.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    monthly_budget: Money = Field(
        default=Decimal("0"),
        ge=0,
        alias="monthlyBudget",
    )
    theme: Theme = Theme.LIGHT
    currency: str = Field(
        default="ALL",
        min_length=1,
        max_length=10,
    )
    notifications: bool = True
    category_budgets: dict[str, Money] = Field(
        default_factory=dict,
        alias="categoryBudgets",
        description="Spending threshold per category"
    )

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# =============================================================================
# DOCUMENT (storage blob and export format)
# =============================================================================

class LedgerDocument(BaseModel):
    """
    The full persisted state: transactions, settings and export time.

    This is both the export/backup format and what import accepts.
    """
    model_config = ConfigDict(populate_by_name=True)

    transactions: list[Transaction] = Field(default_factory=list)
    settings: Optional[UserSettings] = None
    export_date: Optional[str] = Field(
        default=None,
        alias="exportDate",
    )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "transactions": [t.to_record() for t in self.transactions],
        }
        if self.settings is not None:
            data["settings"] = self.settings.to_record()
        if self.export_date is not None:
            data["exportDate"] = self.export_date
        return data

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationResult(BaseModel):
    """Outcome of validating one transaction-shaped record."""

    is_valid: bool
    errors: dict[str, str] = Field(
        default_factory=dict,
        description="Field name -> human-readable message"
    )

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def summary(self) -> str:
        """All messages joined, for a one-line user notice."""
        return ", ".join(self.errors.values())
