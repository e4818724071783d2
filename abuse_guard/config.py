"""Centralized configuration for the abuse-guard service.

This module holds the defaults that are read from the environment, so limiter
wiring, storage and the HTTP layer do not scatter ``os.getenv`` calls around.
"""
import os
from pathlib import Path

# Try to load .env file from project root
try:
    from dotenv import load_dotenv
    env_path = Path(__file__).resolve().parents[1] / ".env"
    load_dotenv(env_path)
except ImportError:
    pass


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Time windows
HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS

# Calendar-day boundaries are computed in this timezone
RATE_LIMIT_TIMEZONE = os.getenv("RATE_LIMIT_TIMEZONE", "UTC")

# Records older than this are reaped (TTL index / purge)
RECORD_RETENTION_HOURS = int(os.getenv("RECORD_RETENTION_HOURS", "24"))

# MongoDB Configuration
MONGODB_URI = os.getenv("MONGODB_URI")
MONGODB_DB_NAME = os.getenv("MONGODB_DB", "abuse_guard")
MONGODB_COLLECTION_NAME = os.getenv("MONGODB_COLLECTION", "attempt_records")
MONGODB_TIMEOUT_SECONDS = int(os.getenv("MONGODB_TIMEOUT_SECONDS", "5"))
# Minimum gap between reconnect attempts while MongoDB is down; calls in between fail fast
MONGODB_RECONNECT_INTERVAL_SECONDS = float(os.getenv("MONGODB_RECONNECT_INTERVAL_SECONDS", "10"))

# Identity resolution
PRINCIPAL_HEADER = os.getenv("PRINCIPAL_HEADER", "X-User-Id")
TRUST_FORWARDED_FOR = _env_bool("TRUST_FORWARDED_FOR", True)

# Admin surface
ADMIN_API_KEY = os.getenv("ADMIN_API_KEY")
ADMIN_RATE_LIMIT = os.getenv("ADMIN_RATE_LIMIT", "30/minute")
