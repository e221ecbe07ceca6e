"""Centralized configuration management for paysync.

This module provides a Pydantic Settings-based configuration system that
consolidates database, collection, credential and logging settings with
environment variable integration and per-profile .env files.
"""

import re
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_PROFILE_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")


class DatabaseConfig(BaseModel):
    """Ledger database configuration settings."""

    model_config = ConfigDict(frozen=True)

    path: Path = Field(
        default=Path("data/duckdb/paysync.duckdb"),
        description="Path to DuckDB ledger file",
    )
    create_dirs: bool = Field(
        default=True, description="Automatically create database directories"
    )

    @field_validator("path")
    @classmethod
    def validate_database_path(cls, v: Path) -> Path:
        """Ensure database path has correct extension."""
        if not str(v).endswith((".db", ".duckdb")):
            raise ValueError("Database path must end with .db or .duckdb")
        return v


class SyncConfig(BaseModel):
    """Collection loop settings (rate limiting, partitions, log buffer)."""

    model_config = ConfigDict(frozen=True)

    item_delay_min: float = Field(
        default=0.1, ge=0.0, le=10.0, description="Minimum delay between items (s)"
    )
    item_delay_max: float = Field(
        default=0.3, ge=0.0, le=10.0, description="Maximum delay between items (s)"
    )
    page_delay_min: float = Field(
        default=0.3, ge=0.0, le=30.0, description="Minimum delay between pages (s)"
    )
    page_delay_max: float = Field(
        default=1.0, ge=0.0, le=30.0, description="Maximum delay between pages (s)"
    )
    year_floor: int = Field(
        default=2010,
        ge=1990,
        description="Oldest year queried for year-partitioned providers",
    )
    max_empty_years: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Consecutive empty years after which a run halts",
    )
    page_size: int = Field(
        default=5, ge=1, le=50, description="Listing page size where supported"
    )
    max_consecutive_page_errors: int = Field(
        default=3,
        ge=1,
        le=100,
        description="Failed listings in a row before a partition is abandoned",
    )
    log_capacity: int = Field(
        default=100, ge=1, le=10000, description="Progress log ring buffer size"
    )
    request_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Optional socket timeout for provider requests (s)",
    )

    @model_validator(mode="after")
    def validate_delay_ranges(self) -> "SyncConfig":
        """Ensure each jitter range is ordered."""
        if self.item_delay_min > self.item_delay_max:
            raise ValueError("item_delay_min must not exceed item_delay_max")
        if self.page_delay_min > self.page_delay_max:
            raise ValueError("page_delay_min must not exceed page_delay_max")
        return self


class CredentialsConfig(BaseModel):
    """Location of per-account session captures."""

    model_config = ConfigDict(frozen=True)

    directory: Path = Field(
        default=Path("data/credentials"),
        description="Directory holding one <account>.curl file per account",
    )


class LoggingConfig(BaseModel):
    """Logging configuration settings."""

    model_config = ConfigDict(frozen=True)

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    log_to_file: bool = Field(default=True, description="Enable file logging")
    log_file_path: Path = Field(
        default=Path("logs/paysync.log"), description="Path to log file"
    )
    max_file_size_mb: int = Field(
        default=50, ge=1, le=1000, description="Maximum log file size in MB"
    )
    backup_count: int = Field(
        default=5, ge=1, le=50, description="Number of log file backups to keep"
    )

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: object) -> object:
        """Accept level names in any case."""
        return v.upper() if isinstance(v, str) else v


class PaySyncSettings(BaseSettings):
    """Main application settings with environment variable integration.

    Environment variables are loaded with the PAYSYNC_ prefix.
    For nested configs, use double underscores: PAYSYNC_SYNC__PAGE_SIZE

    Profile Support:
    - Loads from .env.{profile} files (e.g., .env.alice)
    - Falls back to .env when no profile file exists
    """

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    credentials: CredentialsConfig = Field(default_factory=CredentialsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    debug: bool = Field(default=False, description="Enable debug mode")
    profile: str = Field(
        default="default",
        description="User profile name (e.g., alice, bob, household)",
    )

    @field_validator("profile")
    @classmethod
    def validate_profile_name(cls, v: str) -> str:
        """Ensure profile name is safe for use as a filename."""
        return _validate_profile(v)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: Any,
        env_settings: Any,
        dotenv_settings: Any,
        file_secret_settings: Any,
    ) -> tuple[Any, ...]:
        """Customize how settings are loaded to support profile-based env files."""
        init_dict = init_settings.init_kwargs if init_settings else {}
        profile = init_dict.get("profile", "default")  # type: ignore[reportUnknownMemberType]

        profile_env_file = Path(f".env.{profile}")
        env_file = str(profile_env_file) if profile_env_file.exists() else ".env"

        from pydantic_settings import DotEnvSettingsSource

        custom_dotenv = DotEnvSettingsSource(
            settings_cls,
            env_file=env_file,
            env_file_encoding="utf-8",
        )

        return (
            init_settings,
            env_settings,
            custom_dotenv,
            file_secret_settings,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PAYSYNC_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    def create_directories(self) -> None:
        """Create necessary directories for the application."""
        directories = [
            self.database.path.parent,
            self.credentials.directory,
            self.logging.log_file_path.parent,
        ]
        for directory in directories:
            directory.mkdir(parents=True, exist_ok=True)


def _validate_profile(profile: str) -> str:
    if not profile:
        raise ValueError("Profile name cannot be empty")
    if not _PROFILE_PATTERN.match(profile):
        raise ValueError(
            f"Invalid profile: {profile}. "
            "Profile name must contain only alphanumeric characters, dashes, and underscores"
        )
    return profile


# Global settings instances - lazy loaded per profile
_settings_cache: dict[str, PaySyncSettings] = {}
_current_profile: str = "default"


def get_settings(profile: str | None = None) -> PaySyncSettings:
    """Get the settings instance for the specified user profile.

    Settings are loaded once per profile and cached.

    Args:
        profile: User profile name (e.g., 'alice'). Defaults to current profile.

    Returns:
        PaySyncSettings: The configuration instance for the specified profile

    Raises:
        ValueError: If configuration is missing or invalid
    """
    if profile is None:
        profile = _current_profile

    if profile in _settings_cache:
        return _settings_cache[profile]

    try:
        settings = PaySyncSettings(profile=profile)
        if settings.database.create_dirs:
            settings.create_directories()
        _settings_cache[profile] = settings
        return settings
    except Exception as e:
        raise ValueError(f"Configuration error for profile '{profile}': {e}") from e


def set_current_profile(profile: str) -> None:
    """Set the current active user profile.

    Raises:
        ValueError: If profile name contains invalid characters
    """
    global _current_profile
    _current_profile = _validate_profile(profile)


def get_current_profile() -> str:
    """Get the current active user profile."""
    return _current_profile


def reload_settings(profile: str | None = None) -> PaySyncSettings:
    """Reload settings from environment variables.

    Useful for testing or when environment variables change at runtime.
    """
    if profile is None:
        profile = _current_profile
    _settings_cache.pop(profile, None)
    return get_settings(profile)


def clear_settings_cache() -> None:
    """Drop every cached settings instance."""
    _settings_cache.clear()


def get_database_path() -> Path:
    """Get the configured ledger path for the current profile."""
    return get_settings().database.path


def get_sync_config() -> SyncConfig:
    """Get the collection loop configuration for the current profile."""
    return get_settings().sync
