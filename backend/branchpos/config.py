# backend/branchpos/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, default))


def _env_float(name: str, default: float) -> float:
    return float(os.environ.get(name, default))


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # Postgres in production
        "sqlite:///branchpos.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    CORS_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if origin.strip()
    ]

    SESSION_ABSOLUTE_HOURS = _env_int("SESSION_ABSOLUTE_HOURS", 24 * 7)

    # Mobile money gateway. MPESA_MODE=mock never leaves the process.
    MPESA_MODE = os.environ.get("MPESA_MODE", "mock")
    MPESA_ENVIRONMENT = os.environ.get("MPESA_ENVIRONMENT", "sandbox")
    MPESA_CONSUMER_KEY = os.environ.get("MPESA_CONSUMER_KEY", "mock_consumer_key")
    MPESA_CONSUMER_SECRET = os.environ.get("MPESA_CONSUMER_SECRET", "mock_consumer_secret")
    MPESA_SHORTCODE = os.environ.get("MPESA_SHORTCODE", "174379")
    MPESA_PASSKEY = os.environ.get("MPESA_PASSKEY", "mock_passkey")
    MPESA_CALLBACK_URL = os.environ.get(
        "MPESA_CALLBACK_URL",
        "http://localhost:5000/api/pos/payment/callback",
    )
    MPESA_CALLBACK_TOKEN = os.environ.get("MPESA_CALLBACK_TOKEN") or None
    MPESA_TIMEOUT_SECONDS = _env_float("MPESA_TIMEOUT_SECONDS", 30.0)
    MPESA_MOCK_RESULT = os.environ.get("MPESA_MOCK_RESULT", "success")

    # Payment confirmation
    PAYMENT_CONFIRM_TIMEOUT_SECONDS = _env_int("PAYMENT_CONFIRM_TIMEOUT_SECONDS", 60)
    POS_POLL_ATTEMPTS = _env_int("POS_POLL_ATTEMPTS", 60)
    POS_POLL_INTERVAL_SECONDS = _env_float("POS_POLL_INTERVAL_SECONDS", 1.0)

    LOW_STOCK_DEFAULT_THRESHOLD = _env_int("LOW_STOCK_DEFAULT_THRESHOLD", 10)
