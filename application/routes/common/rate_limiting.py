"""
Rate limiting utilities for route handlers.

Provides the key function for the coarse IP rate limit and the per-user
admission check of the likes endpoints.
"""

import logging

from quart import request

from application.services.likes.rate_limiter import FixedWindowRateLimiter
from common.exception import RateLimited

logger = logging.getLogger(__name__)


async def default_rate_limit_key() -> str:
    """
    Generate rate limit key based on client IP address.

    Returns:
        str: Client IP address or "unknown" if not available

    Example:
        >>> @rate_limit(100, timedelta(minutes=1), key_function=default_rate_limit_key)
        >>> async def my_endpoint():
        >>>     pass
    """
    return request.remote_addr or "unknown"


def enforce_user_rate_limit(limiter: FixedWindowRateLimiter, operation_class: str) -> None:
    """
    Admit the authenticated caller or raise RateLimited.

    Must run after require_auth has set request.user_id. The raised error
    carries the seconds until the caller's window resets.
    """
    user_id = getattr(request, "user_id", None) or request.remote_addr or "anonymous"
    if not limiter.admit(user_id, operation_class):
        raise RateLimited(
            f"too many {operation_class} requests",
            retry_after=limiter.retry_after(user_id, operation_class),
        )
