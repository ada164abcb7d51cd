"""
Online Retail SQL Analytics
Centralized Configuration Management

Configuration is read from environment variables (and an optional ``.env``
file) through Pydantic settings, with validation and type safety.
"""

from functools import lru_cache
from typing import List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Sections are built by default_factory, so each reads the .env file itself
ENV_FILE_CONFIG = dict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


class DatabaseSettings(BaseSettings):
    """Relational store configuration"""

    model_config = SettingsConfigDict(env_prefix="DATABASE_", **ENV_FILE_CONFIG)

    url: str = Field(
        default="sqlite+aiosqlite:///./data/online_retail.db",
        description="SQLAlchemy async database URL",
    )
    echo: bool = Field(default=False, description="Echo SQL statements")
    insert_chunk_size: int = Field(default=5000, description="Rows per INSERT batch")


class DataLakeSettings(BaseSettings):
    """Input and output file locations"""

    model_config = SettingsConfigDict(env_prefix="DATA_", **ENV_FILE_CONFIG)

    source_file: str = Field(
        default="./data/raw/online_retail.csv",
        description="Online Retail CSV export",
    )
    reports_path: str = Field(default="./data/reports", description="Exported reports path")
    dead_letter_path: str = Field(
        default="./data/raw/dead_letter",
        description="Rejected rows are written here",
    )
    delimiter: str = Field(default=",", description="Field delimiter of the source file")
    encoding: str = Field(default="utf8-lossy", description="Source file encoding")
    datetime_formats: List[str] = Field(
        default=[
            "%Y-%m-%d %H:%M:%S",
            "%Y-%m-%d %H:%M",
            "%m/%d/%Y %H:%M",
            "%d/%m/%Y %H:%M",
        ],
        description="Accepted InvoiceDate formats, tried in order",
    )


class ReportSettings(BaseSettings):
    """Reporting query parameters"""

    model_config = SettingsConfigDict(env_prefix="REPORT_", **ENV_FILE_CONFIG)

    export_format: str = Field(default="csv", description="csv, json or parquet")
    sample_customer_id: int = Field(default=17850, description="Customer used by per-customer reports")
    focus_country: str = Field(default="United Kingdom", description="Country used by single-country reports")
    default_limit: int = Field(default=20, description="Row limit for listing reports")

    @field_validator("export_format")
    @classmethod
    def validate_export_format(cls, v: str) -> str:
        """Validate export format"""
        allowed = ["csv", "json", "parquet"]
        if v.lower() not in allowed:
            raise ValueError(f"Export format must be one of: {allowed}")
        return v.lower()


class MonitoringSettings(BaseSettings):
    """Logging configuration"""

    model_config = SettingsConfigDict(env_prefix="", **ENV_FILE_CONFIG)

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")
    log_file: Optional[str] = Field(default=None, alias="LOG_FILE", description="Log file path")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    data_lake: DataLakeSettings = Field(default_factory=DataLakeSettings)
    reports: ReportSettings = Field(default_factory=ReportSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
