"""
Application Configuration — Environment & Settings
Centralizes all config from .env with Pydantic Settings for validation.
"""
from pathlib import Path
from functools import lru_cache
from pydantic_settings import BaseSettings

# Resolve paths relative to backend/ directory
BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # --- Core ---
    APP_NAME: str = "PMC Licensing Review API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"   # development | staging | production

    # --- Database ---
    DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'data' / 'licensing.db'}"

    # --- Security ---
    SECRET_KEY: str = "licensing-secret-key-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    SESSION_EXPIRY_MINUTES: int = 60
    CORS_ORIGINS: list[str] = ["*"]

    # --- OTP ---
    OTP_EXPIRY_MINUTES: int = 10
    OTP_MAX_ATTEMPTS: int = 3
    # Echo raw codes in API responses. Never enable outside local testing.
    EXPOSE_OTP_IN_RESPONSE: bool = False

    # --- Document download ---
    DOWNLOAD_TOKEN_TTL_MINUTES: int = 10
    MAX_DAILY_DOWNLOAD_OTP_REQUESTS: int = 3
    ARTIFACT_DIR: str = str(BASE_DIR / "data" / "artifacts")

    # --- Applications ---
    APPLICATION_NUMBER_PREFIX: str = "PMC"
    MOCK_PAYMENT_ENABLED: bool = True
    LICENCE_FEE: int = 3000

    # --- Logging ---
    LOG_DIR: str = str(BASE_DIR / "logs")
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    class Config:
        env_file = str(BASE_DIR / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
