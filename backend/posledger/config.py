# backend/posledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the process unless DATABASE_URL points elsewhere
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///posledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Upper bound on how long a writer waits for a contended row/database lock.
    # SQLite: busy timeout on the connection. PostgreSQL: SET LOCAL lock_timeout.
    STORE_LOCK_TIMEOUT_SECONDS = float(os.environ.get("STORE_LOCK_TIMEOUT_SECONDS", "5"))

    # Whole-operation attempts made by HTTP callers after a retryable failure.
    # 1 means no retry.
    SALE_RETRY_ATTEMPTS = int(os.environ.get("SALE_RETRY_ATTEMPTS", "1"))

    MOVEMENT_LIST_LIMIT = int(os.environ.get("MOVEMENT_LIST_LIMIT", "200"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


def engine_options(uri: str, lock_timeout: float) -> dict:
    """Engine options derived from the database URI."""
    if uri.startswith("sqlite"):
        return {"connect_args": {"timeout": lock_timeout, "check_same_thread": False}}
    return {"pool_pre_ping": True}
