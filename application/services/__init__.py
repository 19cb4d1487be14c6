"""
Application services package.

Contains the likes ledger services and the client-side sync layer.
"""

from application.services.likes import FixedWindowRateLimiter, LikesLedgerService

__all__ = ["FixedWindowRateLimiter", "LikesLedgerService"]
