"""
Audit Logger

DESIGN DECISION: Every mutation of the ledger and every failure is logged.
This provides:
1. Traceability of destructive operations (the ledger keeps no history)
2. Debugging capability
3. A place for best-effort failures (backup writes) to surface

The audit logger:
- Writes structured JSON lines through structlog
- Never raises into the caller
"""

import logging
from decimal import Decimal
from typing import Optional

import structlog

from expense_ledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(debug: bool = False) -> None:
    """Route structlog output to stderr at INFO (or DEBUG) level."""
    logging.basicConfig(
        format="%(message)s",
        level=logging.DEBUG if debug else logging.INFO,
    )


class AuditLogger:
    """
    Central audit logging service.

    Stores and services take an optional AuditLogger; without one they
    fall back to a module-level instance.
    """

    def __init__(self, name: str = "expense_ledger.audit"):
        self._logger = structlog.get_logger(name)

    def log(self, event: AuditEvent) -> None:
        """
        Log an audit event at the level matching its severity.

        A failure to log is reported once and swallowed.
        """
        try:
            log_dict = event.to_log_dict()

            if event.severity == AuditSeverity.ERROR:
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            elif event.severity == AuditSeverity.DEBUG:
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception as e:
            # Log failure but don't raise
            self._logger.error(
                "audit_log_failed",
                error=str(e),
                event_id=str(event.event_id),
                event_type=event.event_type.value,
            )

    def log_transaction_added(
        self,
        transaction_id: str,
        transaction_type: str,
        amount: Decimal,
        category: str,
        user_id: Optional[str],
    ) -> None:
        self.log(AuditEventBuilder.transaction_added(
            transaction_id=transaction_id,
            transaction_type=transaction_type,
            amount=amount,
            category=category,
            user_id=user_id,
        ))

    def log_transaction_updated(
        self,
        transaction_id: str,
        changed_fields: list[str],
        user_id: Optional[str],
    ) -> None:
        self.log(AuditEventBuilder.transaction_updated(
            transaction_id=transaction_id,
            changed_fields=changed_fields,
            user_id=user_id,
        ))

    def log_transaction_deleted(
        self,
        transaction_id: str,
        user_id: Optional[str],
    ) -> None:
        self.log(AuditEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            user_id=user_id,
        ))

    def log_validation_failed(
        self,
        errors: dict[str, str],
        transaction_id: Optional[str] = None,
    ) -> None:
        self.log(AuditEventBuilder.validation_failed(
            errors=errors,
            transaction_id=transaction_id,
        ))

    def log_data_exported(self, transaction_count: int) -> None:
        self.log(AuditEventBuilder.data_exported(transaction_count))

    def log_data_imported(self, transaction_count: int, settings_replaced: bool) -> None:
        self.log(AuditEventBuilder.data_imported(transaction_count, settings_replaced))

    def log_import_failed(self, error_message: str) -> None:
        self.log(AuditEventBuilder.import_failed(error_message))

    def log_data_cleared(self) -> None:
        self.log(AuditEventBuilder.data_cleared())

    def log_settings_updated(self, changed_keys: list[str]) -> None:
        self.log(AuditEventBuilder.settings_updated(changed_keys))

    def log_user_logged_in(self, user_id: str, username: str) -> None:
        self.log(AuditEventBuilder.user_logged_in(user_id, username))

    def log_unauthorized_access(
        self,
        transaction_id: str,
        owner_id: Optional[str],
        acting_user_id: Optional[str],
    ) -> None:
        self.log(AuditEventBuilder.unauthorized_access(
            transaction_id=transaction_id,
            owner_id=owner_id,
            acting_user_id=acting_user_id,
        ))

    def log_backup_failed(self, key: str, error_message: str) -> None:
        self.log(AuditEventBuilder.backup_failed(key, error_message))

    def log_storage_error(self, operation: str, error_message: str) -> None:
        self.log(AuditEventBuilder.storage_error(operation, error_message))


default_audit_logger = AuditLogger()
