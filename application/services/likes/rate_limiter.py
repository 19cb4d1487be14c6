"""
Per-user request admission for the likes endpoints.

Fixed-window counters keyed by (user_id, operation_class). Buckets live in
process memory only; this is a best-effort limiter, not a security boundary.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

OPERATION_READ = "read"
OPERATION_WRITE = "write"


@dataclass(frozen=True)
class RateLimitRule:
    """Allow ``limit`` requests per ``window_seconds``."""

    limit: int
    window_seconds: float

    def __post_init__(self):
        if self.limit < 1 or self.window_seconds <= 0:
            raise ValueError("rate limit rule needs limit >= 1 and a positive window")


@dataclass
class RateBucket:
    count: int
    window_reset_at: float


DEFAULT_RULES: Dict[str, RateLimitRule] = {
    OPERATION_READ: RateLimitRule(limit=120, window_seconds=60.0),
    OPERATION_WRITE: RateLimitRule(limit=60, window_seconds=60.0),
}


class FixedWindowRateLimiter:
    """
    Fixed-window request counter.

    Expired buckets are overwritten on the next request of their key rather
    than swept in the background.

    Example:
        >>> limiter = FixedWindowRateLimiter({"write": RateLimitRule(2, 60)})
        >>> [limiter.admit("alice", "write") for _ in range(3)]
        [True, True, False]
    """

    def __init__(
        self,
        rules: Optional[Mapping[str, RateLimitRule]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.rules: Dict[str, RateLimitRule] = dict(rules or DEFAULT_RULES)
        self._clock = clock
        self._buckets: Dict[Tuple[str, str], RateBucket] = {}

    def admit(self, user_id: str, operation_class: str) -> bool:
        """
        Count one request and decide whether it may proceed.

        Args:
            user_id: Caller identity
            operation_class: Key into the configured rules

        Returns:
            False when the caller is over the limit for the current window

        Raises:
            KeyError: If no rule is configured for operation_class
        """
        rule = self.rules[operation_class]
        now = self._clock()
        key = (user_id, operation_class)
        bucket = self._buckets.get(key)

        if bucket is None or bucket.window_reset_at <= now:
            self._buckets[key] = RateBucket(count=1, window_reset_at=now + rule.window_seconds)
            return True

        if bucket.count < rule.limit:
            bucket.count += 1
            return True

        logger.info(f"Rate limit hit for {user_id} ({operation_class}, {rule.limit}/{rule.window_seconds:g}s)")
        return False

    def retry_after(self, user_id: str, operation_class: str) -> float:
        """Seconds until the caller's current window resets (0 if none is active)."""
        bucket = self._buckets.get((user_id, operation_class))
        if bucket is None:
            return 0.0
        return max(0.0, bucket.window_reset_at - self._clock())

    def __len__(self) -> int:
        return len(self._buckets)
