"""
Centralized application configuration

Values come from environment variables or the backend .env file.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings"""

    # API Settings
    API_TITLE: str = "Lightning POS API"
    API_VERSION: str = "1.0.0"
    API_DESCRIPTION: str = "Point-of-sale backend with Lightning checkout"

    # Storage: "postgres" keeps catalog and basket across restarts,
    # "memory" is for development and tests
    STORAGE_BACKEND: str = "memory"
    DATABASE_URL: Optional[str] = None
    DB_MAX_RETRIES: int = 3
    DB_RETRY_DELAY_SECONDS: float = 1.0

    # Lightning gateway: "mock" (demo backend with delayed auto-settlement)
    # or "lnbits" (LNbits wallet over HTTP)
    LIGHTNING_BACKEND: str = "mock"
    BREEZ_API_KEY: str = ""
    BREEZ_MNEMONIC: str = ""
    MOCK_SETTLEMENT_DELAY_SECONDS: float = 10.0

    LNBITS_URL: str = ""
    LNBITS_API_KEY: str = ""
    LNBITS_WEBHOOK_URL: str = ""
    LIGHTNING_WEBHOOK_SECRET: str = ""
    GATEWAY_TIMEOUT_SECONDS: float = 30.0

    # Checkout
    CHECKOUT_POLL_INTERVAL_SECONDS: float = 3.0

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )


settings = Settings()
