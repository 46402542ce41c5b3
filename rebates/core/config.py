"""Configuration management for the rebate calculator."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from rebates.services.records import REBATE_LEVELS, RatePeriod

_DEFAULT_DATABASE_PATH = Path(__file__).resolve().parent / "../.." / "rebates.db"


class Settings(BaseSettings):
    app_name: str = Field(default="Rebate Calculator")
    version: str = Field(default="0.1.0")

    database_url: str = Field(default=f"sqlite:///{_DEFAULT_DATABASE_PATH.resolve()}")

    reporting_year: int | None = Field(default=None)
    reporting_month: int | None = Field(default=None, ge=1, le=12)
    rate_period: RatePeriod = Field(default=RatePeriod.YEARLY)
    default_rebate_level: int = Field(default=1)
    emit_zero_rate_records: bool = Field(default=False)
    calculation_workers: int = Field(default=1, ge=1)
    generic_partner_provider: str | None = Field(default="partnerpay")
    special_case_wildcards: tuple[str, ...] = Field(default=("*", "ALL"))
    data_directory: Path = Field(default=Path("data"))

    enable_metrics: bool = Field(default=True)
    enable_tracing: bool = Field(default=False)
    logging_config_path: Path | None = Field(default=None)

    model_config = SettingsConfigDict(
        env_prefix="REBATES_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @field_validator("default_rebate_level")
    @classmethod
    def _check_level(cls, value: int) -> int:
        if value not in REBATE_LEVELS:
            raise ValueError("default_rebate_level must be between 1 and 8")
        return value

    @property
    def reporting_period_label(self) -> str | None:
        """``YYYYMM`` label for the configured reporting period, if complete."""

        if self.reporting_year is None or self.reporting_month is None:
            return None
        return f"{self.reporting_year:04d}{self.reporting_month:02d}"


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()


__all__ = ["Settings", "get_settings"]
