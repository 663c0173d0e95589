"""
Configuration module with strict validation.

Key principles:
- APP STARTUP requires only DATABASE_URL
- Matching thresholds are configurable but validated to sane ranges
- Operator roles and JWT settings come from the environment, never code
- Safe defaults for all optional settings
"""
from typing import Optional, Set

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with validation.

    Loads from environment variables and .env file.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Database (REQUIRED for API startup)
    database_url: str = Field(
        ...,
        description="Database connection URL (PostgreSQL in production, SQLite for tests)"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # Operator authentication
    jwt_secret_key: str = Field(
        default="entity-merge-secret-key-change-in-production",
        description="Secret used to verify operator access tokens"
    )

    jwt_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm"
    )

    operator_roles: str = Field(
        default="admin,bd_team",
        description="Comma-separated roles allowed to use the data tools"
    )

    # Duplicate detection
    name_similarity_threshold: float = Field(
        default=0.70,
        gt=0.0,
        le=1.0,
        description="Minimum normalized-name similarity for two accounts to cluster"
    )

    address_match_score: float = Field(
        default=0.85,
        gt=0.0,
        le=1.0,
        description="Fixed confidence reported for exact address-key clusters"
    )

    candidate_account_type: Optional[str] = Field(
        default="single_location",
        description="Only accounts of this type are considered for clustering (empty = all)"
    )

    candidate_account_status: Optional[str] = Field(
        default="active",
        description="Only accounts with this status are considered for clustering (empty = all)"
    )

    # Change log
    change_log_default_limit: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Default number of change log entries returned"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard levels."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v_upper

    @field_validator("candidate_account_type")
    @classmethod
    def validate_candidate_account_type(cls, v: Optional[str]) -> Optional[str]:
        """Empty string means no type filter."""
        if not v:
            return None
        if v not in {"single_location", "multi_location"}:
            raise ValueError(
                "candidate_account_type must be 'single_location' or 'multi_location'"
            )
        return v

    @field_validator("candidate_account_status")
    @classmethod
    def validate_candidate_account_status(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    def get_operator_roles(self) -> Set[str]:
        """
        Parse the configured operator roles.

        Returns:
            Set of role names allowed to call the data tools
        """
        return {
            role.strip()
            for role in self.operator_roles.split(",")
            if role.strip()
        }


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get or create the global settings instance.

    This pattern allows:
    - Easy testing (can reset settings between tests)
    - Lazy loading (only loads when first accessed)
    - Singleton pattern (same instance used everywhere)
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """
    Reset the global settings instance.

    Useful for testing to ensure clean state between tests.
    """
    global _settings
    _settings = None
