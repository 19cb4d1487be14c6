"""
Error taxonomy shared by the sync clients and the likes ledger.

Every error carries the HTTP status it maps to and a stable machine-readable
code, so route handlers and clients translate in both directions without
string matching.
"""

from typing import Optional


class SyncError(Exception):
    """Base class for all synchronization layer errors."""

    status_code: int = 500
    error_code: str = "sync_error"
    retryable: bool = False

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.error_code)
        self.message = message or self.error_code


class NetworkError(SyncError):
    """Transient transport failure (connection reset, timeout)."""

    status_code = 503
    error_code = "network_error"
    retryable = True


class ValidationError(SyncError):
    """Bad query, page size, filter or request payload."""

    status_code = 400
    error_code = "validation_error"


class InvalidCategory(ValidationError):
    """Like category is not part of the closed category set."""

    error_code = "invalid_table"


class MissingRecordId(ValidationError):
    """Toggle request without a record id."""

    error_code = "missing_record_id"


class RateLimited(SyncError):
    """Caller exceeded its request budget for the current window."""

    status_code = 429
    error_code = "rate_limited"
    retryable = True

    def __init__(self, message: Optional[str] = None, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class ConcurrentUpdate(SyncError):
    """A concurrent write to the same ledger could not be resolved."""

    status_code = 409
    error_code = "concurrent_update"
    retryable = True


class Unauthorized(SyncError):
    """Request requires (re-)authentication."""

    status_code = 401
    error_code = "unauthorized"


class UpstreamUnavailable(SyncError):
    """Content store or profile store is down."""

    status_code = 502
    error_code = "upstream_unavailable"


class VersionConflictError(Exception):
    """Conditional profile write rejected because the stored version moved on."""


def error_from_status(status_code: int, message: Optional[str] = None) -> SyncError:
    """
    Map an HTTP status code returned by a remote API to the error taxonomy.

    Args:
        status_code: HTTP status of the failed response
        message: Response text or error message (optional)

    Returns:
        SyncError subclass instance matching the status

    Example:
        >>> isinstance(error_from_status(429), RateLimited)
        True
    """
    if status_code in (401, 403):
        return Unauthorized(message)
    if status_code == 409:
        return ConcurrentUpdate(message)
    if status_code == 429:
        return RateLimited(message)
    if status_code in (400, 404, 422):
        return ValidationError(message)
    return UpstreamUnavailable(message)


__all__ = [
    "SyncError",
    "NetworkError",
    "ValidationError",
    "InvalidCategory",
    "MissingRecordId",
    "RateLimited",
    "ConcurrentUpdate",
    "Unauthorized",
    "UpstreamUnavailable",
    "VersionConflictError",
    "error_from_status",
]
