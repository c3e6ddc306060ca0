"""Application configuration from environment variables."""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Only values needed before the database is reachable live here. Anything an
    administrator tunes at runtime belongs in the settings store instead.
    """

    # App
    APP_NAME: str = "SnipVault"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    BASE_PATH: str = ""
    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    # Database
    DATABASE_URL: str = "sqlite:///./data/snipvault.db"

    # Auth
    JWT_SECRET: str = "change-me-in-production"
    JWT_SECRET_FILE: Optional[str] = None
    JWT_ALGORITHM: str = "HS256"
    TOKEN_EXPIRY_MINUTES: int = 24 * 60
    AUTH_COOKIE_NAME: str = "snipvault_token"
    COOKIE_SECURE: bool = False

    # Account modes
    DISABLE_ACCOUNTS: bool = False
    DISABLE_INTERNAL_ACCOUNTS: bool = False
    ALLOW_PASSWORD_CHANGES: bool = True

    # Security plane
    ALLOWED_HOSTS: str = ""
    SETTINGS_CACHE_TTL_SECONDS: float = 5.0
    RATE_LIMIT_SWEEP_INTERVAL_SECONDS: float = 60.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    @property
    def allowed_hosts(self) -> list[str]:
        """Parsed, lower-cased host allow-list (empty means permissive)."""
        return [
            value.strip().lower()
            for value in self.ALLOWED_HOSTS.split(",")
            if value.strip()
        ]

    @property
    def jwt_secret(self) -> str:
        """Signing secret, preferring the contents of JWT_SECRET_FILE."""
        if self.JWT_SECRET_FILE:
            return Path(self.JWT_SECRET_FILE).read_text(encoding="utf-8").strip()
        return self.JWT_SECRET


settings = Settings()
