# backend/stocksync/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Remote document store (shared by every client of the tenant)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///stocksync.sqlite3",
    )
    # Local cache partitions live in their own database
    SQLALCHEMY_BINDS = {
        "cache": os.environ.get("CACHE_DATABASE_URL", "sqlite:///stocksync_cache.sqlite3"),
    }
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    TENANT_ID = os.environ.get("TENANT_ID", "default-app-id")

    # GST applied to line items (unit price is tax inclusive)
    TAX_RATE = float(os.environ.get("TAX_RATE", "0.18"))

    START_ONLINE = _env_bool("START_ONLINE", True)
    LOG_LEVEL = (os.environ.get("LOG_LEVEL") or "INFO").strip().upper()

    COUNTER_RETRY_ATTEMPTS = int(os.environ.get("COUNTER_RETRY_ATTEMPTS", "3"))
