"""
Environment configuration for the likes ledger service and sync clients.

Values are read once at import time from the process environment
(optionally populated from a .env file).
"""

import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def get_bool_env(key: str, default: bool = False) -> bool:
    """Interpret common truthy spellings ("1", "true", "yes") of a flag."""
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes")


# Identity provider
AUTH_SECRET_KEY = os.getenv("AUTH_SECRET_KEY", "dev-secret-key-change-in-production")
AUTH_ALGORITHM = os.getenv("AUTH_ALGORITHM", "HS256")
AUTH_AUDIENCE = os.getenv("AUTH_AUDIENCE")
AUTH_ISSUER = os.getenv("AUTH_ISSUER")

# Profile store backing the likes ledger. Empty URL selects the in-memory store.
PROFILE_STORE_URL = os.getenv("PROFILE_STORE_URL", "")
PROFILE_STORE_TOKEN = os.getenv("PROFILE_STORE_TOKEN", "")

# Likes ledger HTTP surface
LIKES_ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("LIKES_ALLOWED_ORIGINS", "").split(",")
    if origin.strip()
]
LIKES_CAP_PER_CATEGORY = int(os.getenv("LIKES_CAP_PER_CATEGORY", "500"))
LIKES_READ_RATE_LIMIT = int(os.getenv("LIKES_READ_RATE_LIMIT", "120"))
LIKES_WRITE_RATE_LIMIT = int(os.getenv("LIKES_WRITE_RATE_LIMIT", "60"))
LIKES_RATE_WINDOW_SECONDS = float(os.getenv("LIKES_RATE_WINDOW_SECONDS", "60"))
LIKES_LOCK_TIMEOUT_SECONDS = float(os.getenv("LIKES_LOCK_TIMEOUT_SECONDS", "5"))
# One fresh ledger read per user (at most once a minute) when the token's likes claim is empty
LIKES_FRESH_WHEN_EMPTY = get_bool_env("LIKES_FRESH_WHEN_EMPTY")
