# backend/deliveryhub/config.py
from __future__ import annotations
import os


def _csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/deliveryhub.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///deliveryhub.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Payment gateway (Stripe Checkout + signed webhooks)
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY", "")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
    STRIPE_WEBHOOK_TOLERANCE = int(os.environ.get("STRIPE_WEBHOOK_TOLERANCE", "300"))

    # Delivery dispatch provider (Shipday-compatible API)
    DISPATCH_API_KEY = os.environ.get("DISPATCH_API_KEY", "")
    DISPATCH_API_URL = os.environ.get("DISPATCH_API_URL", "https://api.shipday.com")
    DISPATCH_TIMEOUT_SECONDS = float(os.environ.get("DISPATCH_TIMEOUT_SECONDS", "10"))

    CORS_ALLOWED_ORIGINS = _csv(os.environ.get(
        "CORS_ALLOWED_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000,http://localhost:9002",
    ))

    APP_VERSION = "1.0.0"
