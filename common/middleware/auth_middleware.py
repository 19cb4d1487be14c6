"""
Authentication middleware for Quart routes.

Provides decorators for protecting routes with JWT authentication.
"""

import functools
import logging
from typing import Any, Callable

from quart import jsonify, request

from common.utils.jwt_utils import (
    TokenExpiredError,
    TokenValidationError,
    get_user_from_header,
)

logger = logging.getLogger(__name__)


def require_auth(func: Callable) -> Callable:
    """
    Decorator to require authentication for a route.

    Validates the JWT token from the Authorization header and attaches
    user information to the request object:
    - request.user_id: The user ID from the token
    - request.likes_snapshot: The token's likes claim, if any

    If no Authorization header is provided or the token is invalid,
    returns a 401 Unauthorized response.

    Usage:
        @app.route('/protected')
        @require_auth
        async def protected_route():
            user_id = request.user_id
            return {'message': f'Hello {user_id}'}
    """

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        auth_header = request.headers.get("Authorization", "")

        if not auth_header:
            logger.warning("Missing Authorization header")
            return jsonify({"error": "unauthorized"}), 401

        try:
            user = get_user_from_header(auth_header)
        except TokenExpiredError:
            logger.warning("Token expired")
            return jsonify({"error": "unauthorized", "message": "token expired"}), 401
        except TokenValidationError as e:
            logger.warning(f"Invalid token: {e}")
            return jsonify({"error": "unauthorized", "message": "invalid token"}), 401

        request.user_id = user.user_id
        request.likes_snapshot = user.likes_snapshot

        logger.debug(f"Authenticated user: {user.user_id}")

        return await func(*args, **kwargs)

    return wrapper
