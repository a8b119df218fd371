"""
Configuration module for the authentication core.

This module uses Pydantic Settings to load and validate environment variables
for the session secret, the public base URL, token lifetimes, outbound HTTP
behaviour and logging.

Environment variables are loaded from .env file or system environment.
Values given explicitly in ``AuthOptions`` always win over these.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


THIRTY_DAYS = 30 * 24 * 60 * 60


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Every field is optional so the library can be imported and used with
    explicit options only.
    """

    # =========================================================================
    # Public URL / Routing
    # =========================================================================

    NEXTAUTH_URL: Optional[str] = Field(
        None,
        description="Canonical public URL of the site (e.g., https://example.com)",
    )

    NEXTAUTH_BASE_PATH: str = Field(
        default="/api/auth",
        description="Path under which all auth actions are mounted; must end in an 'auth' segment",
    )

    NEXTAUTH_OPTIONS: Optional[str] = Field(
        None,
        description="Import path 'package.module:attribute' of the AuthOptions used by the standalone server",
    )

    # =========================================================================
    # Session / JWT Configuration
    # =========================================================================

    NEXTAUTH_SECRET: Optional[str] = Field(
        None,
        description="Secret used to derive token signing and encryption keys",
    )

    SESSION_MAX_AGE_SECONDS: int = Field(
        default=THIRTY_DAYS,
        description="Session lifetime in seconds",
        ge=60,
    )

    JWT_ENCRYPTION: bool = Field(
        default=False,
        description="Encrypt session tokens (JWE) in addition to signing them",
    )

    # =========================================================================
    # Outbound HTTP (provider token exchange, userinfo, JWKS)
    # =========================================================================

    HTTP_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Timeout for calls to identity providers",
        gt=0,
    )

    # =========================================================================
    # Server / Logging
    # =========================================================================

    HOST: str = Field(default="0.0.0.0", description="Host to bind the standalone server")

    PORT: int = Field(default=3000, description="Port to bind the standalone server", ge=1, le=65535)

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    DEBUG: bool = Field(default=False, description="Serve the OpenAPI docs and enable uvicorn auto-reload")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def use_secure_cookies(self) -> bool:
        """
        Whether cookies should carry the ``__Secure-``/``__Host-`` prefixes.

        Returns:
            True when the configured public URL is served over HTTPS.
        """
        return bool(self.NEXTAUTH_URL and self.NEXTAUTH_URL.startswith("https://"))

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("NEXTAUTH_URL")
    @classmethod
    def validate_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"NEXTAUTH_URL must start with http:// or https://, got: {v}")
        return v.rstrip("/")

    @field_validator("NEXTAUTH_BASE_PATH")
    @classmethod
    def validate_base_path(cls, v: str) -> str:
        v = "/" + v.strip("/")
        if v.rsplit("/", 1)[-1] != "auth":
            raise ValueError(f"NEXTAUTH_BASE_PATH must end with an 'auth' segment, got: {v}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}, got: {v}")
        return v.upper()


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    Cached so that the environment is read once per process. Tests that
    change the environment call ``get_settings.cache_clear()``.

    Returns:
        Settings instance with all configuration loaded and validated.
    """
    return Settings()


def validate_configuration(settings: Optional[Settings] = None) -> dict:
    """
    Validate critical configuration settings and return a status report.

    Args:
        settings: Settings to check (defaults to the process settings)

    Returns:
        Dictionary with validation status, errors and warnings.
    """
    settings = settings or get_settings()
    errors = []
    warnings = []

    if not settings.NEXTAUTH_SECRET:
        errors.append("NEXTAUTH_SECRET is not set")
    elif len(settings.NEXTAUTH_SECRET) < 32:
        warnings.append("NEXTAUTH_SECRET is shorter than recommended (32+ chars)")

    if not settings.NEXTAUTH_URL:
        warnings.append("NEXTAUTH_URL is not set; the base URL will be derived from each request")
    elif not settings.use_secure_cookies:
        warnings.append("NEXTAUTH_URL is not HTTPS; cookies will not use secure prefixes")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "session_max_age_seconds": settings.SESSION_MAX_AGE_SECONDS,
        "jwt_encryption": settings.JWT_ENCRYPTION,
    }
