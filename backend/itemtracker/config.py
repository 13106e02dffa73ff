# backend/itemtracker/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/itemtracker.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///itemtracker.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "USD")
    SUPPORTED_CURRENCIES = ("GEL", "USD", "EUR")

    CORS_ALLOWED_ORIGINS = tuple(
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if origin.strip()
    )

    # Daily inventory snapshots (01:00 Tbilisi time by default)
    SNAPSHOT_SCHEDULER_ENABLED = _env_flag("SNAPSHOT_SCHEDULER_ENABLED")
    SNAPSHOT_HOUR = int(os.environ.get("SNAPSHOT_HOUR", "1"))
    SNAPSHOT_MINUTE = int(os.environ.get("SNAPSHOT_MINUTE", "0"))
    SNAPSHOT_TIMEZONE = os.environ.get("SNAPSHOT_TIMEZONE", "Asia/Tbilisi")
    SNAPSHOT_LEASE_SECONDS = int(os.environ.get("SNAPSHOT_LEASE_SECONDS", "3600"))
