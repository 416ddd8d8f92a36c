# backend/rentmarket/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/rentmarket.sqlite3 unless DATABASE_URL is set
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///rentmarket.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Outbound email. With no SMTP_HOST the message is written to the log instead.
    SMTP_HOST = os.environ.get("SMTP_HOST")
    SMTP_PORT = int(os.environ.get("SMTP_PORT", "465"))
    SMTP_SECURE = _env_bool("SMTP_SECURE", True)
    SMTP_USER = os.environ.get("SMTP_USER")
    SMTP_PASS = os.environ.get("SMTP_PASS")
    SMTP_TIMEOUT_SECONDS = int(os.environ.get("SMTP_TIMEOUT_SECONDS", "30"))
    FROM_EMAIL = os.environ.get("FROM_EMAIL", "no-reply@rentmarket.local")
    FROM_NAME = os.environ.get("FROM_NAME", "RentMarket")
    APP_URL = os.environ.get("APP_URL", "http://localhost:3000")

    # Rental expiry scheduler
    AUTO_START_SCHEDULER = _env_bool("AUTO_START_SCHEDULER", False)
    EXPIRY_CHECK_INTERVAL_MINUTES = int(os.environ.get("EXPIRY_CHECK_INTERVAL_MINUTES", "5"))

    # Auth
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", str(24 * 7)))

    CORS_ALLOWED_ORIGINS = {
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if origin.strip()
    }
