"""Audit logging package."""

from expense_ledger.audit.logger import (
    AuditLogger,
    configure_logging,
    default_audit_logger,
)

__all__ = ["AuditLogger", "configure_logging", "default_audit_logger"]
