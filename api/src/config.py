"""
FastAPI application configuration using Pydantic Settings.

Provides centralized configuration for:
- Database connection (MongoDB)
- Remote asset storage (Cloudinary search API)
- Identity provider (Clerk session tokens)
- API settings (CORS, pagination)
- Logging and monitoring

All settings support environment variable overrides and .env file loading.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from typing import List, Optional
from functools import lru_cache


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables with the
    prefix "PIXELYZE_" (e.g., PIXELYZE_MONGODB_URL).

    Environment variables are loaded from:
    1. System environment
    2. .env file in the current directory
    3. Default values defined below
    """

    # =========================================================================
    # API Settings
    # =========================================================================

    app_name: str = Field(
        default="Pixelyze API",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="API version"
    )
    api_prefix: str = Field(
        default="/api",
        description="URL prefix for image and account actions"
    )

    debug: bool = Field(
        default=False,
        description="Debug mode - enables verbose logging and error traces"
    )
    environment: str = Field(
        default="production",
        description="Environment: development|staging|production"
    )

    host: str = Field(
        default="0.0.0.0",
        description="API bind host"
    )
    port: int = Field(
        default=8000,
        description="API bind port",
        gt=0,
        lt=65536
    )

    # =========================================================================
    # Database Settings (MongoDB)
    # =========================================================================

    mongodb_url: Optional[str] = Field(
        default=None,
        description="MongoDB connection URL (required at first connection)"
    )
    mongodb_db_name: str = Field(
        default="Pixelyze",
        description="MongoDB database name"
    )
    mongodb_server_selection_timeout_ms: int = Field(
        default=5000,
        description="Server selection timeout (milliseconds)",
        gt=0
    )
    mongodb_max_pool_size: int = Field(
        default=20,
        description="Maximum connections held by the driver",
        gt=0,
        le=500
    )

    # =========================================================================
    # Remote Asset Storage (Cloudinary)
    # =========================================================================

    cloudinary_cloud_name: Optional[str] = Field(
        default=None,
        description="Cloudinary cloud name"
    )
    cloudinary_api_key: Optional[str] = Field(
        default=None,
        description="Cloudinary API key"
    )
    cloudinary_api_secret: Optional[str] = Field(
        default=None,
        description="Cloudinary API secret"
    )
    cloudinary_folder: str = Field(
        default="aniket_pixelyze",
        description="Storage folder that scopes every asset search"
    )
    cloudinary_api_base_url: str = Field(
        default="https://api.cloudinary.com/v1_1",
        description="Cloudinary Admin API base URL"
    )
    cloudinary_timeout: float = Field(
        default=10.0,
        description="Search request timeout (seconds)",
        gt=0
    )
    download_timeout: float = Field(
        default=30.0,
        description="Image download timeout (seconds)",
        gt=0
    )

    # =========================================================================
    # Identity Provider (Clerk)
    # =========================================================================

    clerk_jwks_url: Optional[str] = Field(
        default=None,
        description="JWKS endpoint used to verify session tokens"
    )
    clerk_issuer: Optional[str] = Field(
        default=None,
        description="Expected 'iss' claim (skipped when unset)"
    )
    clerk_audience: Optional[str] = Field(
        default=None,
        description="Expected 'aud' claim (skipped when unset)"
    )
    clerk_jwt_algorithm: str = Field(
        default="RS256",
        description="Session token signing algorithm"
    )
    clerk_session_cookie: str = Field(
        default="__session",
        description="Cookie carrying the session token for page requests"
    )
    clerk_jwks_ttl_seconds: int = Field(
        default=3600,
        description="How long fetched signing keys are reused (seconds)",
        gt=0
    )

    # =========================================================================
    # Navigation
    # =========================================================================

    sign_in_path: str = Field(
        default="/sign-in",
        description="Where unauthenticated page requests are redirected"
    )
    error_path: str = Field(
        default="/error",
        description="Where unknown transformation types are redirected"
    )
    home_path: str = Field(
        default="/",
        description="Where image deletion always navigates"
    )

    # =========================================================================
    # CORS Settings
    # =========================================================================

    cors_enabled: bool = Field(
        default=True,
        description="Enable CORS middleware"
    )
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )

    # =========================================================================
    # Pagination Settings
    # =========================================================================

    pagination_default_limit: int = Field(
        default=9,
        description="Default page size for image listings",
        gt=0,
        le=100
    )

    # =========================================================================
    # Monitoring and Logging
    # =========================================================================

    metrics_enabled: bool = Field(
        default=True,
        description="Enable Prometheus metrics"
    )
    metrics_endpoint: str = Field(
        default="/metrics",
        description="Metrics endpoint path"
    )

    log_level: str = Field(
        default="INFO",
        description="Log level: DEBUG|INFO|WARNING|ERROR|CRITICAL"
    )
    log_format: str = Field(
        default="json",
        description="Log format: json|text"
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the allowed values."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got: {v}")
        return v_upper

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is one of the allowed values."""
        allowed = ["development", "staging", "production"]
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"environment must be one of {allowed}, got: {v}")
        return v_lower

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        allowed = ["json", "text"]
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"log_format must be one of {allowed}, got: {v}")
        return v_lower

    @field_validator("cors_origins")
    @classmethod
    def validate_cors_origins(cls, v: List[str]) -> List[str]:
        """Validate CORS origins are not empty."""
        if not v:
            return ["*"]
        return v

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    @property
    def cloudinary_search_url(self) -> str:
        """Resource search endpoint for the configured cloud."""
        return f"{self.cloudinary_api_base_url}/{self.cloudinary_cloud_name}/resources/search"

    # =========================================================================
    # Model Config
    # =========================================================================

    model_config = SettingsConfigDict(
        env_prefix="PIXELYZE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once and shared
    across the application.

    Returns:
        Settings: Cached settings instance

    Example:
        >>> from api.src.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.mongodb_db_name)
        Pixelyze
    """
    return Settings()


def clear_settings_cache():
    """
    Clear the settings cache.

    Useful for testing when you need to reload settings with different
    environment variables.
    """
    get_settings.cache_clear()
