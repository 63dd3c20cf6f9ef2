"""
Configuration Management for Expense Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Storage backend selection, validation strictness and API endpoints
are all validated once at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


STRICT_REQUIRED_FIELDS = "type,amount,category,date,userId,id,timestamp"


class StorageSettings(BaseSettings):
    """Transaction storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_STORAGE_",
        extra="ignore"
    )

    backend: str = Field(
        default="file",
        pattern="^(memory|file|api)$",
        description="Which storage implementation to use"
    )
    data_dir: Path = Field(
        default=Path("ledger_data"),
        description="Directory holding the JSON collections (file backend)"
    )
    backup_dir: Optional[Path] = Field(
        default=None,
        description="Optional directory receiving best-effort backup copies"
    )
    username: Optional[str] = Field(
        default=None,
        description="Namespace for the collections (one set per user)"
    )

    @field_validator('username')
    @classmethod
    def blank_username_is_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat an empty namespace as no namespace."""
        if v is not None and not v.strip():
            return None
        return v


class ValidationSettings(BaseSettings):
    """Transaction validation configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_VALIDATION_",
        extra="ignore"
    )

    required_fields: str = Field(
        default=STRICT_REQUIRED_FIELDS,
        description="Comma-separated list of fields every stored transaction must carry"
    )

    @property
    def required_fields_list(self) -> list[str]:
        """Get required fields as a list."""
        return [f.strip() for f in self.required_fields.split(",") if f.strip()]


class ApiSettings(BaseSettings):
    """Transaction API (networked storage) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_API_",
        extra="ignore"
    )

    base_url: str = Field(
        default="http://localhost:3001",
        description="Base URL of the transactions API"
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Total timeout for a single API request"
    )

    @field_validator('base_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug logging"
    )

    # Ownership
    default_user_id: str = Field(
        default="default",
        min_length=1,
        description="User id stamped on transactions when no user is logged in"
    )
    multi_user: bool = Field(
        default=False,
        description="Reject updates/deletes of transactions owned by another user"
    )

    # Defaults for a fresh settings record
    default_currency: str = Field(
        default="ALL",
        min_length=1,
        max_length=10,
        description="Currency code for a new settings record"
    )
    default_theme: str = Field(
        default="light",
        pattern="^(light|dark|system)$",
        description="Theme for a new settings record"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def validation(self) -> ValidationSettings:
        return ValidationSettings()

    @property
    def api(self) -> ApiSettings:
        return ApiSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, object]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus
    {setting_name}_error entries for the failing ones.
    """
    results: dict[str, object] = {}

    settings = get_settings()

    for name in ("storage", "validation", "api", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except ValueError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
