"""
Application configuration.

All configuration is loaded from environment variables.
Never hardcode secrets or connection strings in code.
"""

import os
from functools import lru_cache

from dotenv import load_dotenv

# Load .env file into environment variables
load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = os.getenv("APP_NAME", "Mobile Money Payments")
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    # Server
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))

    # Database
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "sqlite:///./mobile_payments.db"
    )

    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "json")

    # Gateway. "simulated" replaces the old demo-mode flag; "live"
    # talks to the REST gateway at GATEWAY_BASE_URL.
    GATEWAY_MODE: str = os.getenv("GATEWAY_MODE", "simulated")
    GATEWAY_BASE_URL: str = os.getenv(
        "GATEWAY_BASE_URL", "https://sandbox.gateway.example"
    )
    GATEWAY_API_KEY: str = os.getenv("GATEWAY_API_KEY", "")
    GATEWAY_CALLBACK_URL: str = os.getenv(
        "GATEWAY_CALLBACK_URL", "http://localhost:8000/payments/callbacks"
    )
    GATEWAY_TIMEOUT_SECONDS: float = float(
        os.getenv("GATEWAY_TIMEOUT_SECONDS", "30")
    )
    GATEWAY_MAX_ATTEMPTS: int = int(os.getenv("GATEWAY_MAX_ATTEMPTS", "4"))
    GATEWAY_BACKOFF_MIN_SECONDS: float = float(
        os.getenv("GATEWAY_BACKOFF_MIN_SECONDS", "1")
    )
    GATEWAY_BACKOFF_MAX_SECONDS: float = float(
        os.getenv("GATEWAY_BACKOFF_MAX_SECONDS", "16")
    )

    # Payments
    COMMISSION_RATE_BPS: int = int(os.getenv("COMMISSION_RATE_BPS", "500"))
    MSISDN_COUNTRY_CODE: str = os.getenv("MSISDN_COUNTRY_CODE", "254")
    STALE_VERSION_MAX_ATTEMPTS: int = int(
        os.getenv("STALE_VERSION_MAX_ATTEMPTS", "5")
    )

    # Recovery
    CLAIM_TIMEOUT_SECONDS: int = int(os.getenv("CLAIM_TIMEOUT_SECONDS", "120"))
    PENDING_TIMEOUT_SECONDS: int = int(
        os.getenv("PENDING_TIMEOUT_SECONDS", "600")
    )
    PENDING_MAX_AGE_SECONDS: int = int(
        os.getenv("PENDING_MAX_AGE_SECONDS", "86400")
    )
    SWEEP_INTERVAL_SECONDS: int = int(
        os.getenv("SWEEP_INTERVAL_SECONDS", "60")
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Return cached settings instance.

    Using lru_cache means the Settings object is created once
    and reused for all subsequent calls. This avoids reading
    environment variables repeatedly.
    """
    return Settings()
