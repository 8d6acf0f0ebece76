# backend/orderdesk/config.py
from __future__ import annotations
import os
from datetime import timedelta


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> tuple[str, ...]:
    raw = os.environ.get(name, default)
    return tuple(part.strip() for part in raw.split(",") if part.strip())


class Config:
    # JSON document holding orders, snapshot, credentials and sessions
    DATA_FILE = os.environ.get("ORDERDESK_DATA_FILE", "commandes.json")

    # Out-of-band secret required by POST /api/pin/setup (empty disables setup)
    SETUP_SECRET = os.environ.get("SETUP_SECRET", "")

    # PIN credentials: one per scope, scope order is the login match order
    PIN_SCOPES = _env_list("PIN_SCOPES", "owner,chef")
    MAX_CREDENTIALS = int(os.environ.get("MAX_PINS", "2"))
    ADMIN_SCOPE = "owner"
    ELEVATED_SCOPES = ("chef",)
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "10"))

    # Sessions
    SESSION_TTL = timedelta(hours=int(os.environ.get("SESSION_TTL_HOURS", "8")))
    SESSION_COOKIE_NAME = "orderdesk_session"
    SESSION_BACKEND = os.environ.get("SESSION_BACKEND", "store")  # "store" | "memory"

    # "merge" keeps items not present in the payload, "replace" drops them
    ORDER_MERGE_POLICY = os.environ.get("ORDER_MERGE_POLICY", "merge")

    # PIN login throttling (per source address)
    LOGIN_MAX_FAILED_ATTEMPTS = 5
    LOGIN_LOCKOUT_WINDOW = timedelta(minutes=15)
    LOGIN_LOCKOUT_DURATION = timedelta(minutes=5)
    LOGIN_LOCKOUT_MAX = timedelta(minutes=60)

    # Honor X-Forwarded-* from one reverse proxy hop
    TRUST_PROXY = _env_bool("TRUST_PROXY", True)
    CORS_ORIGINS = _env_list("CORS_ORIGINS", "*")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
