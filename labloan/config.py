# labloan/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw not in (None, "") else default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key. Also signs bearer tokens.
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///labloan.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Browser origins allowed to call the API (comma separated)
    CORS_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
        if o.strip()
    )

    # Bearer tokens older than this are rejected
    TOKEN_MAX_AGE_SECONDS = _env_int("TOKEN_MAX_AGE_SECONDS", 12 * 3600)

    # Request rules
    PICKUP_GRACE_DAYS = _env_int("PICKUP_GRACE_DAYS", 0)
    REQUEST_RETENTION_DAYS = _env_int("REQUEST_RETENTION_DAYS", 7)
    EXPIRED_GRACE_DAYS = _env_int("EXPIRED_GRACE_DAYS", 1)

    # Background sweeps
    SCHEDULER_ENABLED = _env_bool("SCHEDULER_ENABLED", False)
    SCHEDULER_TICK_SECONDS = _env_int("SCHEDULER_TICK_SECONDS", 60)
    EXPIRY_SWEEP_INTERVAL_SECONDS = _env_int("EXPIRY_SWEEP_INTERVAL_SECONDS", 3600)
    STALE_SWEEP_INTERVAL_SECONDS = _env_int("STALE_SWEEP_INTERVAL_SECONDS", 24 * 3600)
    REMINDER_SWEEP_INTERVAL_SECONDS = _env_int("REMINDER_SWEEP_INTERVAL_SECONDS", 24 * 3600)
