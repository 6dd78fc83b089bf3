"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables, with an optional .env file
as a fallback. This pattern keeps secrets out of source code: the .env file is
gitignored, and .env.example provides a safe template for developers.

Pydantic Settings automatically:
  1. Reads from environment variables (highest priority)
  2. Falls back to .env file values
  3. Uses defaults defined here (lowest priority)

Usage:
    from billpay.config import settings
    print(settings.WEBHOOK_URL)
"""

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the Bill Payment API.

    Required fields (no defaults) MUST be set in .env or environment:
      - SECRET_KEY: Used to verify JWT bearer tokens
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Application ---
    APP_NAME: str = "Bill Payment API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # --- Database ---
    # SQLite for local runs; swap to a postgresql+asyncpg URL for production
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/billpay.db"

    # --- Authentication ---
    # REQUIRED: tokens are issued by the identity service with this shared secret
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # --- Verification threshold ---
    # Used when the system_config row is missing or holds garbage
    DEFAULT_VERIFICATION_THRESHOLD: Decimal = Decimal("10000")
    VERIFICATION_THRESHOLD_CONFIG_KEY: str = "bill_payment_verification_threshold"

    # --- Invoice webhooks ---
    # Leave WEBHOOK_URL unset to keep outbox rows queued without delivery
    WEBHOOK_URL: str | None = None
    WEBHOOK_SECRET: str | None = None
    WEBHOOK_TIMEOUT_SECONDS: float = 5.0
    WEBHOOK_MAX_ATTEMPTS: int = 5
    WEBHOOK_POLL_INTERVAL_SECONDS: float = 2.0
    WEBHOOK_BATCH_SIZE: int = 50

    # --- Uploaded documents ---
    # Supporting documents for verified payments are written under this directory
    DOCUMENT_STORAGE_DIR: str = "./data/documents"
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # --- CORS ---
    # Origins allowed to make cross-origin requests (frontend URLs)
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]


# Singleton: import this instance everywhere instead of creating new Settings()
settings = Settings()
