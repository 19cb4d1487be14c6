"""
Allow-list CORS for the likes endpoints.

An origin is echoed back only when it is in the configured allow-list. With
an empty allow-list, only the server's own origin is allowed.
"""

import logging
from typing import Iterable, Optional
from urllib.parse import urlsplit

from quart import Response, request

from application.routes.common.constants import LIKES_CORS_HEADERS, LIKES_CORS_METHODS
from application.services.config_service import get_config_service

logger = logging.getLogger(__name__)


def resolve_allowed_origin(origin: Optional[str], allowed: Iterable[str], host: str) -> Optional[str]:
    """
    Decide which origin, if any, to put in Access-Control-Allow-Origin.

    Args:
        origin: Request's Origin header
        allowed: Configured allow-list
        host: Request's Host header (same-origin fallback)

    Example:
        >>> resolve_allowed_origin("https://a.example", ["https://a.example"], "api.example")
        'https://a.example'
        >>> resolve_allowed_origin("https://evil.example", [], "api.example") is None
        True
    """
    if not origin:
        return None
    allowed = [item.rstrip("/") for item in allowed]
    if allowed:
        return origin if origin.rstrip("/") in allowed else None
    if urlsplit(origin).netloc == host:
        return origin
    return None


async def apply_cors_headers(response: Response) -> Response:
    """after_request hook adding CORS headers for allowed origins."""
    response.vary.add("Origin")
    allowed = get_config_service().get_likes_config().allowed_origins
    origin = resolve_allowed_origin(request.headers.get("Origin"), allowed, request.host)
    if origin is None:
        if request.headers.get("Origin"):
            logger.debug(f"Origin {request.headers.get('Origin')} not allowed")
        return response

    response.headers["Access-Control-Allow-Origin"] = origin
    response.headers["Access-Control-Allow-Methods"] = LIKES_CORS_METHODS
    response.headers["Access-Control-Allow-Headers"] = LIKES_CORS_HEADERS
    return response
