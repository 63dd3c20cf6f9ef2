"""Configuration package."""

from expense_ledger.config.settings import (
    ApiSettings,
    AppSettings,
    Settings,
    StorageSettings,
    ValidationSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "ApiSettings",
    "AppSettings",
    "Settings",
    "StorageSettings",
    "ValidationSettings",
    "get_settings",
    "validate_all_settings",
]
