"""Centralized settings management for the BTC import."""

from __future__ import annotations

from datetime import date, timedelta
from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# BASE_DIR points to the repository root
BASE_DIR = Path(__file__).resolve().parents[2]
PACKAGE_CONFIG_DIR = Path(__file__).resolve().parent


class Settings(BaseSettings):
    """
    Import settings powered by pydantic-settings.

    Loads configuration from environment variables and a .env file located
    in the repository root.
    """

    # -------------------------------------------------------------------------
    # ENVIRONMENT
    # -------------------------------------------------------------------------
    ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    JSON_LOGS: bool = False

    # -------------------------------------------------------------------------
    # SOURCE (WordPress "The Events Calendar")
    # -------------------------------------------------------------------------
    BTC_API_BASE: str = Field(
        "https://bostontangocalendar.com/wp-json/tribe/events/v1", min_length=1
    )
    BTC_PER_PAGE: int = 50

    # -------------------------------------------------------------------------
    # TARGET (TangoTiempo)
    # -------------------------------------------------------------------------
    TT_API_BASE: str = Field("http://localhost:3010/api", min_length=1)
    APP_ID: str = "1"
    AUTH_TOKEN: SecretStr | None = None

    # -------------------------------------------------------------------------
    # RUN
    # -------------------------------------------------------------------------
    DRY_RUN: bool = True
    TEST_DATE: date | None = None
    TEST_DATE_OFFSET_DAYS: int = 90

    # -------------------------------------------------------------------------
    # HTTP / RETRY
    # -------------------------------------------------------------------------
    REQUEST_TIMEOUT: float = 30.0
    MAX_RETRIES: int = Field(3, ge=0)
    INITIAL_DELAY_MS: int = Field(1000, ge=0)
    MAX_DELAY_MS: int = Field(30000, ge=0)

    # -------------------------------------------------------------------------
    # PATHS
    # -------------------------------------------------------------------------
    OUTPUT_DIR: Path = BASE_DIR / "import-results"
    ERROR_LOG_DIR: Path | None = None
    RESOLUTION_CONFIG_PATH: Path = PACKAGE_CONFIG_DIR / "resolution.yaml"

    model_config = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        env_file_encoding="utf-8",
        # Allow extra fields in .env but ignore them in the model
        extra="ignore",
    )

    @field_validator("TEST_DATE", mode="before")
    @classmethod
    def _empty_test_date(cls, value):
        if value == "":
            return None
        return value

    @property
    def auth_token(self) -> str | None:
        """Plain bearer token, or None when not configured."""
        return self.AUTH_TOKEN.get_secret_value() if self.AUTH_TOKEN else None

    @property
    def error_log_dir(self) -> Path:
        """Directory of the error line-log and per-error detail files."""
        return self.ERROR_LOG_DIR or self.OUTPUT_DIR / "logs"

    def resolve_target_date(self, today: date | None = None) -> date:
        """
        Return the calendar date a run should import.

        Parameters
        ----------
        today : date, optional
            Reference day, defaults to the current local date.

        Returns
        -------
        date
            TEST_DATE when configured, otherwise ``today`` plus
            TEST_DATE_OFFSET_DAYS.
        """
        if self.TEST_DATE:
            return self.TEST_DATE
        today = today or date.today()
        return today + timedelta(days=self.TEST_DATE_OFFSET_DAYS)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached import settings.

    Returns
    -------
    Settings
        The singleton settings instance.
    """
    return Settings()
