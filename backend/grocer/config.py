# backend/grocer/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/grocer.sqlite3 unless DATABASE_URL is set
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///grocer.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Random-suffix probes before falling back to a uuid-derived sale number
    SALE_NUMBER_MAX_ATTEMPTS = int(os.environ.get("SALE_NUMBER_MAX_ATTEMPTS", "10"))

    # How long a stock-mutating request waits for a per-product lock
    STOCK_LOCK_TIMEOUT_SECONDS = float(os.environ.get("STOCK_LOCK_TIMEOUT_SECONDS", "10"))

    # Zero-delta adjustments are rejected unless this is enabled
    ALLOW_NOOP_ADJUSTMENTS = _env_bool("ALLOW_NOOP_ADJUSTMENTS", False)

    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "24"))
