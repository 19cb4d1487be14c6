"""
Centralized error handling middleware.

Provides consistent error handling across all routes with automatic
error logging and standardized response format.
"""

import logging

from pydantic import ValidationError as PydanticValidationError
from quart import Quart
from werkzeug.exceptions import HTTPException

from application.routes.common.response import APIResponse
from common.exception import ConcurrentUpdate, RateLimited, SyncError
from common.utils.jwt_utils import TokenExpiredError, TokenValidationError

logger = logging.getLogger(__name__)


def register_error_handlers(app: Quart) -> None:
    """
    Register centralized error handlers for the application.

    Handles:
    - SyncError subclasses → their own status and error code
    - ValidationError (Pydantic) → 400 Bad Request
    - TokenExpiredError / TokenValidationError → 401 Unauthorized
    - HTTPException (Werkzeug) → Appropriate status
    - Exception (Generic) → 500 Internal Server Error

    Args:
        app: Quart application instance

    Example:
        >>> from quart import Quart
        >>> app = Quart(__name__)
        >>> register_error_handlers(app)
    """

    @app.errorhandler(SyncError)
    async def handle_sync_error(error: SyncError):
        """
        Handle errors of the synchronization layer.

        Returns the error's status code with its machine-readable code.
        Rate limit rejections carry Retry-After.
        """
        if isinstance(error, RateLimited):
            logger.info(f"{error.error_code}: {error.message}")
            return APIResponse.rate_limited(error.retry_after, error.message)
        if isinstance(error, ConcurrentUpdate):
            logger.info(f"{error.error_code}: {error.message}")
        elif error.status_code >= 500:
            logger.error(f"{error.error_code}: {error.message}")
        else:
            logger.warning(f"{error.error_code}: {error.message}")

        return APIResponse.error(error.error_code, error.status_code, error.message)

    @app.errorhandler(PydanticValidationError)
    async def handle_validation_error(error: PydanticValidationError):
        """
        Handle Pydantic validation errors.

        Returns 400 Bad Request with detailed validation errors.
        """
        # Extract validation errors
        errors = []
        for err in error.errors():
            field = " -> ".join(str(loc) for loc in err["loc"])
            errors.append({"field": field, "message": err["msg"], "type": err["type"]})

        logger.warning(f"Validation error: {errors}")

        return APIResponse.error(
            "validation_error", 400, "Validation failed", details={"errors": errors}
        )

    @app.errorhandler(TokenExpiredError)
    async def handle_token_expired(error: TokenExpiredError):
        logger.warning(f"Token expired: {error}")
        return APIResponse.unauthorized("token expired")

    @app.errorhandler(TokenValidationError)
    async def handle_token_invalid(error: TokenValidationError):
        logger.warning(f"Invalid token: {error}")
        return APIResponse.unauthorized("invalid token")

    @app.errorhandler(HTTPException)
    async def handle_http_exception(error: HTTPException):
        """
        Handle Werkzeug HTTP exceptions.

        Preserves the original HTTP status code. 429s raised by the IP
        rate limiter keep their Retry-After header.
        """
        logger.info(f"HTTP exception: {error.code} - {error.description}")

        if error.code == 429:
            headers = {
                name: value
                for name, value in error.get_headers()
                if name.lower() != "content-type"
            }
            return APIResponse.error("rate_limited", 429, headers=headers)

        error_code = (error.name or "error").lower().replace(" ", "_")
        return APIResponse.error(error_code, error.code or 500, error.description)

    @app.errorhandler(Exception)
    async def handle_generic_exception(error: Exception):
        """
        Handle all uncaught exceptions.

        Returns 500 Internal Server Error.
        Logs full stack trace for debugging.
        """
        logger.exception(f"Unhandled exception: {error}")

        # In production, hide implementation details
        return APIResponse.internal_error("An unexpected error occurred")
