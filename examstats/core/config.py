"""
Analysis engine configuration management with environment-based settings.
"""
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Main engine settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ============= Application Settings =============
    APP_NAME: str = "Exam Analysis Engine"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field(default="development")

    # ============= Database Settings =============
    # Only used by the PostgreSQL data source and the CLI job
    DATABASE_URL: Optional[str] = Field(default=None)
    DATABASE_CONNECT_TIMEOUT: int = 10

    # ============= Item Analysis Settings =============
    ANALYSIS_MIN_SAMPLE_SIZE: int = 10
    ANALYSIS_CONFIDENCE_LEVEL: float = 0.95
    ANALYSIS_GROUP_FRACTION: float = 0.27  # Classical upper/lower 27%
    ANALYSIS_SIGNIFICANCE_TEST: str = "upper_lower"  # upper_lower or chance
    ANALYSIS_INCLUDE_DISTRACTORS: bool = True
    ANALYSIS_EXCLUDE_INCOMPLETE: bool = False

    # ============= Integrity Settings =============
    INTEGRITY_LARGE_COHORT_THRESHOLD: int = 500
    INTEGRITY_FLAG_THRESHOLD: float = 0.9

    # ============= Logging Settings =============
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"  # json or text

    @field_validator("ANALYSIS_SIGNIFICANCE_TEST")
    @classmethod
    def check_significance_test(cls, v: str) -> str:
        v = v.lower()
        if v not in ("upper_lower", "chance"):
            raise ValueError(f"Unsupported significance test: {v}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()

    def is_production(self) -> bool:
        """Check if running in production."""
        return self.ENVIRONMENT.lower() == "production"

    def is_testing(self) -> bool:
        """Check if running in testing."""
        return self.ENVIRONMENT.lower() == "testing"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
