"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables, with an optional .env file
as a fallback. This keeps secrets out of source code: the .env file is
gitignored, and .env.example provides a safe template for developers.

Pydantic Settings automatically:
  1. Reads from environment variables (highest priority)
  2. Falls back to .env file values
  3. Uses defaults defined here (lowest priority)

Usage:
    from app.config import settings
    print(settings.SECRET_KEY)
"""

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the bank ledger API.

    Required fields (no defaults) MUST be set in .env or environment:
      - SECRET_KEY: Used to sign JWT tokens
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Application ---
    APP_NAME: str = "YieldBank API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    # "standard" for human-readable lines, "json" for log shippers
    LOG_FORMAT: str = "standard"

    # --- Database ---
    # SQLite for local runs; swap to a PostgreSQL (asyncpg) URL for production
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/bank.db"

    # --- Authentication ---
    # REQUIRED: No default: forces the developer to set a real secret
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # --- CORS ---
    # Origins allowed to make cross-origin requests (frontend URLs)
    ALLOWED_ORIGINS: list[str] = ["http://localhost:5173"]

    # --- Accounts ---
    # Four-letter bank code embedded in every generated IBAN
    IBAN_BANK_CODE: str = "YLDB"
    # Overdraft floor given to newly approved accounts when the approver
    # does not supply one
    DEFAULT_BALANCE_LIMIT: Decimal = Decimal("0.00")

    # --- House ATM account ---
    # Counterparty for cash deposits and withdrawals. Provisioned once at
    # startup; its IBAN is then injected into the ATM endpoint.
    PROVISION_HOUSE_ACCOUNT: bool = True
    HOUSE_ACCOUNT_EMAIL: str = "atm@yieldbank.com"
    HOUSE_ACCOUNT_BANK_CODE: str = "ATMS"
    HOUSE_ACCOUNT_BALANCE: Decimal = Decimal("999999999.99")
    HOUSE_ACCOUNT_DAILY_LIMIT: Decimal = Decimal("10000000.00")
    HOUSE_ACCOUNT_ABSOLUTE_LIMIT: Decimal = Decimal("5000000.00")
    HOUSE_ACCOUNT_BALANCE_LIMIT: Decimal = Decimal("-1000000.00")


# Singleton: import this instance everywhere instead of creating new Settings()
settings = Settings()
