"""Shared fixtures for the expense ledger tests."""

from typing import Any, Optional

import pytest

from expense_ledger.config import get_settings
from expense_ledger.models.transaction import UserSettings
from expense_ledger.services.storage import LocalTransactionStorage, MemoryBackend

from factories import RecordingAuditLogger


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Isolate tests from LEDGER_* variables in the developer's environment."""
    for name in (
        "LEDGER_STORAGE_BACKEND",
        "LEDGER_STORAGE_DATA_DIR",
        "LEDGER_STORAGE_BACKUP_DIR",
        "LEDGER_STORAGE_USERNAME",
        "LEDGER_VALIDATION_REQUIRED_FIELDS",
        "LEDGER_API_BASE_URL",
        "MULTI_USER",
        "DEFAULT_USER_ID",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def audit() -> RecordingAuditLogger:
    return RecordingAuditLogger()


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def default_settings() -> UserSettings:
    return UserSettings(currency="ALL")


@pytest.fixture
def make_storage(audit, default_settings):
    """Factory for LocalTransactionStorage wired to the recording audit logger."""

    def _make(
        backend: Optional[MemoryBackend] = None,
        **kwargs: Any,
    ) -> LocalTransactionStorage:
        kwargs.setdefault("audit_logger", audit)
        kwargs.setdefault("default_user_id", "tester")
        kwargs.setdefault("multi_user", False)
        kwargs.setdefault("default_settings", default_settings)
        return LocalTransactionStorage(backend or MemoryBackend(), **kwargs)

    return _make


@pytest.fixture
def storage(make_storage, backend) -> LocalTransactionStorage:
    return make_storage(backend)
