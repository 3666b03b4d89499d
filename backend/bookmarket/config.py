# backend/bookmarket/config.py
from __future__ import annotations
import os


def _csv(value: str) -> list[str]:
    return [part.strip().upper() for part in value.split(",") if part.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/bookmarket.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///bookmarket.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Share of every sale kept by the platform, in percent of the gross amount.
    # Frozen into each purchase row at creation time.
    PLATFORM_FEE_PERCENTAGE = float(os.environ.get("PLATFORM_FEE_PERCENTAGE", "10"))
    CURRENCY = os.environ.get("CURRENCY", "usd")

    # Stripe Checkout
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY", "")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
    STRIPE_WEBHOOK_TOLERANCE = int(os.environ.get("STRIPE_WEBHOOK_TOLERANCE", "300"))
    STRIPE_TIMEOUT_SECONDS = float(os.environ.get("STRIPE_TIMEOUT_SECONDS", "10"))
    SHIPPING_COUNTRIES = _csv(os.environ.get("SHIPPING_COUNTRIES", "US"))

    # Used to build checkout success/cancel redirects
    APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:5000")
