# backend/propartner/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/propartner.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///propartner.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Multi-tenant: the organization a request acts on
    TENANT_HEADER = os.environ.get("TENANT_HEADER", "X-Org-Id")

    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "EUR")

    # Loyalty program: 1 point per currency unit spent, grants expire after a year
    LOYALTY_POINTS_PER_UNIT = _env_int("LOYALTY_POINTS_PER_UNIT", 1)
    LOYALTY_DEFAULT_EXPIRATION_DAYS = _env_int("LOYALTY_DEFAULT_EXPIRATION_DAYS", 365)

    # Read-modify-write units are retried on lock/version conflicts
    TRANSACTION_RETRY_ATTEMPTS = _env_int("TRANSACTION_RETRY_ATTEMPTS", 3)
    TRANSACTION_RETRY_BACKOFF = float(os.environ.get("TRANSACTION_RETRY_BACKOFF", "0.1"))
