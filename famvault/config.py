"""
famvault settings

Read once from the environment (prefix FAMVAULT_) or a local .env file and
cached; tests build FamVaultSettings directly instead.

Usage:
    from famvault.config import get_settings

    db_path = get_settings().db_path
"""

from pathlib import Path
from typing import Literal
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FamVaultSettings(BaseSettings):
    """
    Runtime settings; each field maps to FAMVAULT_<FIELD>, e.g.
    FAMVAULT_SWEEP_INTERVAL_SECONDS=30
    """

    model_config = SettingsConfigDict(
        env_prefix="FAMVAULT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ============================================
    # RUNTIME
    # ============================================

    environment: Literal["development", "production", "testing"] = Field(
        default="development",
        description="Deployment environment"
    )

    debug: bool = Field(
        default=False,
        description="FastAPI debug mode"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    log_json: bool = Field(
        default=False,
        description="Emit JSON-formatted log lines instead of plain text"
    )

    # ============================================
    # STORAGE
    # ============================================

    data_dir: Path = Field(
        default_factory=lambda: Path.cwd() / ".famvault_data",
        description="Base data directory for the permission database"
    )

    db_filename: str = Field(
        default="famvault.db",
        description="SQLite database file name inside data_dir"
    )

    db_timeout_seconds: float = Field(
        default=30.0,
        description="SQLite busy timeout in seconds"
    )

    # ============================================
    # PERMISSIONS
    # ============================================

    perms_explain: bool = Field(
        default=False,
        description="Enable authorization diagnostics (PermissionEngine.explain)"
    )

    sweep_interval_seconds: int = Field(
        default=60,
        ge=1,
        description="Interval between background expiry sweeps"
    )

    expiring_soon_days: int = Field(
        default=7,
        ge=1,
        description="Look-ahead window for 'expiring soon' permission listings"
    )

    max_reason_length: int = Field(
        default=500,
        ge=1,
        description="Maximum length of a delegation request reason"
    )

    adult_age: int = Field(
        default=18,
        ge=0,
        description="Minimum age for the admin and responsible roles"
    )

    @field_validator("data_dir", mode="after")
    @classmethod
    def create_data_dir(cls, v: Path) -> Path:
        v.mkdir(parents=True, exist_ok=True)
        return v

    # ============================================
    # DERIVED PATHS
    # ============================================

    @property
    def db_path(self) -> Path:
        """Permission database path"""
        return self.data_dir / self.db_filename


@lru_cache()
def get_settings() -> FamVaultSettings:
    """Process-wide settings, built on first call"""
    return FamVaultSettings()


def reload_settings() -> FamVaultSettings:
    """Drop the cached settings and re-read the environment"""
    get_settings.cache_clear()
    return get_settings()
