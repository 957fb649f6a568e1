"""
Application Configuration — Environment & Settings
Centralizes all config from .env with Pydantic Settings for validation.
"""
from pathlib import Path
from functools import lru_cache
from typing import Dict

from pydantic_settings import BaseSettings

# Resolve paths relative to backend/ directory
BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # --- Core ---
    APP_NAME: str = "StableUPI Gateway API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # --- Database ---
    DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'data' / 'stableupi.db'}"

    # --- Pricing (CoinGecko) ---
    COINGECKO_API_KEY: str = ""
    COINGECKO_BASE_URL: str = "https://api.coingecko.com/api/v3"
    RATE_BASE_ASSET: str = "tether"        # USDT/INR is the USD/INR proxy
    RATE_QUOTE_CURRENCY: str = "inr"
    ETH_PRICE_ASSET: str = "ethereum"
    ETH_QUOTE_CURRENCY: str = "usd"
    RATE_CACHE_SECONDS: int = 60
    RATE_MAX_AGE_SECONDS: int = 900
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # --- Networks ---
    DEFAULT_CHAIN_ID: int = 421614          # Arbitrum Sepolia
    DEFAULT_NETWORK_FEE_USDC: str = "0.5"
    NETWORK_FEES_USDC: Dict[int, str] = {
        1: "2.5",
        42161: "0.1",
        11155111: "0.5",
        421614: "0.5",
    }

    # --- Payouts ---
    PAYOUT_PROVIDER: str = "sandbox"        # cashfree | razorpay | sandbox
    PAYOUT_BATCH_LIMIT: int = 50
    SANDBOX_MAX_TRANSFER_INR: str = "25000"
    SANDBOX_WEBHOOK_SECRET: str = "sandbox-webhook-secret"

    CASHFREE_CLIENT_ID: str = ""
    CASHFREE_CLIENT_SECRET: str = ""
    CASHFREE_BASE_URL: str = "https://sandbox.cashfree.com"
    CASHFREE_API_VERSION: str = "2024-01-01"
    CASHFREE_FUNDSOURCE_ID: str = ""
    CASHFREE_WEBHOOK_SECRET: str = ""
    CASHFREE_MAX_TRANSFER_INR: str = "25000"

    RAZORPAY_KEY_ID: str = ""
    RAZORPAY_KEY_SECRET: str = ""
    RAZORPAY_BASE_URL: str = "https://api.razorpay.com/v1"
    RAZORPAY_ACCOUNT_NUMBER: str = ""
    RAZORPAY_WEBHOOK_SECRET: str = ""
    RAZORPAY_MAX_TRANSFER_INR: str = "1000000"

    # --- Scanning ---
    QR_MAX_LENGTH: int = 2048
    LAST_SCAN_TTL_SECONDS: int = 900
    LAST_SCAN_MAX_SESSIONS: int = 1024

    # --- Security ---
    CORS_ORIGINS: list[str] = ["*"]
    RATE_LIMIT_REQUESTS: int = 30
    RATE_LIMIT_WINDOW_SECONDS: int = 60

    # --- Logging ---
    LOG_DIR: str = str(BASE_DIR / "logs")
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = str(BASE_DIR / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
