"""
Response utilities for standardized API responses.

Provides consistent response formatting across all routes. Error bodies carry
a stable machine-readable ``error`` code and an optional human ``message``.
"""

import math
from typing import Any, Dict, Optional, Tuple

from quart import Response, jsonify


class APIResponse:
    """
    Standardized API response helper.

    Ensures consistent response format across all endpoints.
    """

    @staticmethod
    def success(data: Any, status: int = 200) -> Tuple[Response, int]:
        """
        Create a successful response.

        Args:
            data: Response data (dict, list, or serializable object)
            status: HTTP status code (default: 200)

        Returns:
            tuple: (Response object, status code)

        Example:
            >>> return APIResponse.success({"ok": True})
        """
        return jsonify(data), status

    @staticmethod
    def error(
        error_code: str,
        status: int = 400,
        message: Optional[str] = None,
        details: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Tuple[Response, int]:
        """
        Create an error response.

        Args:
            error_code: Machine-readable code, e.g. "rate_limited"
            status: HTTP status code (default: 400)
            message: Human-readable explanation (optional)
            details: Additional error details (optional)
            headers: Extra response headers (optional)

        Returns:
            tuple: (Response object, status code)

        Example:
            >>> return APIResponse.error("validation_error", 400, "recordId required")
        """
        error_data: Dict[str, Any] = {"error": error_code}
        if message is not None:
            error_data["message"] = message
        if details is not None:
            error_data["details"] = details
        response = jsonify(error_data)
        for name, value in (headers or {}).items():
            response.headers[name] = value
        return response, status

    @staticmethod
    def no_content() -> Tuple[Response, int]:
        """Create an empty 204 response (CORS preflight)."""
        return Response("", status=204), 204

    @staticmethod
    def unauthorized(message: Optional[str] = None) -> Tuple[Response, int]:
        return APIResponse.error("unauthorized", 401, message)

    @staticmethod
    def rate_limited(
        retry_after: Optional[float] = None, message: Optional[str] = None
    ) -> Tuple[Response, int]:
        """
        Create a 429 Too Many Requests response.

        ``retry_after`` is rounded up to whole seconds for the Retry-After header.

        Example:
            >>> return APIResponse.rate_limited(retry_after=12.5)
        """
        headers = {"Retry-After": str(max(1, math.ceil(retry_after)))} if retry_after else None
        return APIResponse.error("rate_limited", 429, message, headers=headers)

    @staticmethod
    def internal_error(message: str = "Internal server error") -> Tuple[Response, int]:
        """
        Create a 500 Internal Server Error response.

        Args:
            message: Custom error message

        Returns:
            tuple: (Response object, 500)
        """
        return APIResponse.error("internal_error", 500, message)
