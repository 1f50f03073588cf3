"""
KMS Sales Analytics
Centralized Configuration Management

This module provides configuration management using Pydantic settings with
environment variable support, validation, and type safety.
"""

from functools import lru_cache
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Aggregation Engine Configuration"""

    model_config = SettingsConfigDict(env_prefix="ENGINE_")

    query_timeout_seconds: Optional[float] = Field(
        default=None,
        ge=0,
        description="Per-query deadline in seconds (None disables it)",
    )


class ReportSettings(BaseSettings):
    """Report Catalog Configuration"""

    model_config = SettingsConfigDict(env_prefix="REPORT_")

    region_top_n: int = Field(default=3, ge=1, description="Regions shown at each end of the ranking")
    customer_limit: int = Field(default=10, ge=1, description="Customers in top/bottom customer reports")
    leaderboard_limit: int = Field(default=5, ge=1, description="Rows in segment leaderboards")
    corporate_year_start: int = Field(default=2009, description="First order year for corporate reports")
    corporate_year_end: int = Field(default=2012, description="Last order year for corporate reports")

    # Output
    output_dir: str = Field(default="./reports", description="Directory for written report files")
    output_format: str = Field(default="csv", description="Report file format: csv or parquet")

    @field_validator("output_format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate output format"""
        allowed = ["csv", "parquet"]
        if v.lower() not in allowed:
            raise ValueError(f"Output format must be one of: {allowed}")
        return v.lower()


class DataSettings(BaseSettings):
    """Sample Dataset Configuration"""

    model_config = SettingsConfigDict(env_prefix="DATA_")

    sample_rows: int = Field(default=8399, ge=0, description="Rows in the generated sample dataset")
    sample_customers: int = Field(default=795, ge=1, description="Distinct customers in the sample dataset")
    seed: int = Field(default=42, description="Random seed for the sample dataset")


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="text", description="Log format: json or text")


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
        populate_by_name=True,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="kms-analytics", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    engine: EngineSettings = Field(default_factory=EngineSettings)
    reports: ReportSettings = Field(default_factory=ReportSettings)
    data: DataSettings = Field(default_factory=DataSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
