"""
Data Models Package

This package contains all Pydantic models used in Expense Ledger.
All data flowing through the system must conform to these schemas.
"""

from expense_ledger.models.transaction import (
    CATEGORIES,
    EXPENSE_CATEGORIES,
    INCOME_CATEGORIES,
    ISO_INSTANT_PATTERN,
    LedgerDocument,
    Money,
    Theme,
    Transaction,
    TransactionType,
    UserSettings,
    ValidationResult,
    format_instant,
    generate_id,
    money_to_json,
    parse_instant,
    utc_now_iso,
)
from expense_ledger.models.analytics import (
    AnalyticsSnapshot,
    BudgetAlert,
    DailyTotal,
    ImportResult,
    Summary,
    Totals,
)
from expense_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Transaction models
    "CATEGORIES",
    "EXPENSE_CATEGORIES",
    "INCOME_CATEGORIES",
    "ISO_INSTANT_PATTERN",
    "LedgerDocument",
    "Money",
    "Theme",
    "Transaction",
    "TransactionType",
    "UserSettings",
    "ValidationResult",
    "format_instant",
    "generate_id",
    "money_to_json",
    "parse_instant",
    "utc_now_iso",
    # Analytics models
    "AnalyticsSnapshot",
    "BudgetAlert",
    "DailyTotal",
    "ImportResult",
    "Summary",
    "Totals",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
