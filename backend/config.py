import logging
import warnings
from enum import Enum
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings


logger = logging.getLogger(__name__)


# Default insecure keys - MUST be changed in production
_DEFAULT_INSECURE_SECRET_KEY = "your-secret-key-here-change-in-production"
_DEFAULT_INSECURE_ENCRYPTION_KEY = "your-encryption-key-here-change-in-production"


class AppMode(str, Enum):
    DEV = "dev"
    PROD = "prod"


class Settings(BaseSettings):
    # Application mode - defaults to DEV for safety
    # SECURITY: In production, explicitly set APP_MODE=prod
    APP_MODE: AppMode = AppMode.DEV

    # Debug mode - MUST be False in production
    DEBUG: bool = False

    # Database (SQLite default for dev, use PostgreSQL in production)
    DATABASE_URL: str = "sqlite+aiosqlite:///./credential_vault.db"

    # Server configuration
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # JWT Configuration
    # Generate with: python -c "import secrets; print(secrets.token_urlsafe(64))"
    SECRET_KEY: str = _DEFAULT_INSECURE_SECRET_KEY
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    JWT_ISSUER: str = "credential-vault"
    JWT_AUDIENCE: str = "credential-vault-users"

    # Secret encryption
    # SECURITY: key material for stored credential secrets, separate from SECRET_KEY
    ENCRYPTION_KEY: str = _DEFAULT_INSECURE_ENCRYPTION_KEY

    # Revoked access tokens are swept from the revocation list on this interval
    REVOCATION_SWEEP_INTERVAL_SECONDS: int = 900

    # Sharing grants expire after this many days unless the owner says otherwise
    SHARE_DEFAULT_EXPIRATION_DAYS: int = 30

    # Redis URL for the refresh/revocation token stores (optional, in-memory used if not set)
    # IMPORTANT: For production with multiple instances, set this so every worker sees the same tokens
    REDIS_URL: Optional[str] = None

    # CORS - comma-separated list of additional allowed origins
    CORS_ALLOWED_ORIGINS: str = ""

    LOG_LEVEL: str = "INFO"

    @property
    def CORS_ORIGINS(self) -> List[str]:
        """
        Get allowed CORS origins.

        SECURITY: In production, never return ["*"] as this allows any origin
        to make authenticated requests.
        """
        origins = []

        if self.APP_MODE == AppMode.DEV:
            origins = [
                "http://localhost:3000",
                "http://localhost:5173",
                "http://127.0.0.1:3000",
                "http://127.0.0.1:5173",
            ]

        if self.CORS_ALLOWED_ORIGINS:
            custom_origins = [
                o.strip() for o in self.CORS_ALLOWED_ORIGINS.split(",") if o.strip()
            ]
            origins.extend(custom_origins)

        if not origins and self.APP_MODE == AppMode.PROD:
            logger.warning(
                "SECURITY WARNING: No CORS_ALLOWED_ORIGINS configured in production. "
                "Cross-origin requests will be blocked."
            )

        return origins

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env variables


def _validate_settings(settings: Settings) -> Settings:
    """
    Validate settings and warn/error on security issues.

    SECURITY: This function ensures critical security settings are properly
    configured in production environments.
    """
    if settings.APP_MODE == AppMode.PROD:
        # CRITICAL: Fail fast if using a default key in production
        if settings.SECRET_KEY == _DEFAULT_INSECURE_SECRET_KEY:
            error_msg = (
                "CRITICAL SECURITY ERROR: Default SECRET_KEY is being used in production! "
                "Set a strong, unique SECRET_KEY environment variable. "
                "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
            )
            logger.critical(error_msg)
            raise ValueError(error_msg)

        if settings.ENCRYPTION_KEY == _DEFAULT_INSECURE_ENCRYPTION_KEY:
            error_msg = (
                "CRITICAL SECURITY ERROR: Default ENCRYPTION_KEY is being used in production! "
                "Stored credential secrets would be readable by anyone with the source code. "
                "Set a strong, unique ENCRYPTION_KEY environment variable."
            )
            logger.critical(error_msg)
            raise ValueError(error_msg)

        # CRITICAL: Fail fast if DEBUG is enabled in production
        if settings.DEBUG:
            error_msg = (
                "CRITICAL SECURITY ERROR: DEBUG=True in production! "
                "Set DEBUG=False or remove the DEBUG environment variable."
            )
            logger.critical(error_msg)
            raise ValueError(error_msg)

        for name in ("SECRET_KEY", "ENCRYPTION_KEY"):
            if len(getattr(settings, name)) < 32:
                warnings.warn(
                    f"{name} appears to be weak (less than 32 characters). "
                    "Consider using a longer, more random key for production.",
                    SecurityWarning,
                    stacklevel=2,
                )

        if not settings.REDIS_URL:
            logger.warning(
                "REDIS_URL not configured in production. "
                "Refresh tokens and revoked tokens live in process memory and are "
                "NOT shared between workers."
            )

    return settings


class SecurityWarning(UserWarning):
    """Warning for security-related configuration issues."""
    pass


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    This function validates settings on first access and raises errors
    for critical security misconfigurations in production.
    """
    settings = Settings()
    return _validate_settings(settings)
