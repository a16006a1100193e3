# backend/eazzymart/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///eazzymart.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Auto-completion of stale "Out for Delivery" orders
    DELIVERY_SWEEPER_ENABLED = _env_bool("DELIVERY_SWEEPER_ENABLED", True)
    DELIVERY_SWEEP_INTERVAL_SECONDS = int(os.environ.get("DELIVERY_SWEEP_INTERVAL_SECONDS", "3600"))
    DELIVERY_AUTO_COMPLETE_HOURS = int(os.environ.get("DELIVERY_AUTO_COMPLETE_HOURS", "24"))

    # Outbound email (Resend HTTP API). Without a key, mail is only logged.
    RESEND_API_KEY = os.environ.get("RESEND_API_KEY")
    MAIL_FROM = os.environ.get("RESEND_FROM_EMAIL", "EazzyMart <onboarding@resend.dev>")

    OTP_TTL_SECONDS = int(os.environ.get("OTP_TTL_SECONDS", "300"))
    OTP_MAX_ATTEMPTS = int(os.environ.get("OTP_MAX_ATTEMPTS", "5"))

    # Return/refund evidence images
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", "uploads")
    MAX_CONTENT_LENGTH = 8 * 1024 * 1024

    CORS_ALLOWED_ORIGINS = set(
        filter(None, os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000,http://127.0.0.1:5500",
        ).split(","))
    )
