"""Likes ledger services: authoritative ledger and request admission."""

from application.services.likes.ledger_service import LikesLedgerService, ToggleResult
from application.services.likes.rate_limiter import (
    OPERATION_READ,
    OPERATION_WRITE,
    FixedWindowRateLimiter,
    RateLimitRule,
)

__all__ = [
    "LikesLedgerService",
    "ToggleResult",
    "FixedWindowRateLimiter",
    "RateLimitRule",
    "OPERATION_READ",
    "OPERATION_WRITE",
]
