"""
Likes Routes

HTTP surface of the likes ledger, mounted at /api/user:

- GET     /likes?fresh=true|false   read the caller's ledger
- POST    /likes {"action": "toggle", "table", "recordId"}
- POST    /likes {"action": "merge", "likes"}
- OPTIONS /likes                    CORS preflight

All data routes require a bearer token. Requests pass a coarse per-IP limit
and then the per-user fixed-window limiter (read and write classes).
"""

import logging
import time
from datetime import timedelta
from functools import wraps

from quart import Blueprint, request
from quart_rate_limiter import rate_limit
from quart_schema import tag

from application.entity.likes import LikesLedger, map_table_to_category
from application.routes.common.constants import RATE_LIMIT_LIKES_PER_IP
from application.routes.common.cors import apply_cors_headers
from application.routes.common.rate_limiting import default_rate_limit_key, enforce_user_rate_limit
from application.routes.common.response import APIResponse
from application.routes.common.validation import validate_json, validate_query_params
from application.routes.models.likes_models import LikesActionRequest, LikesQueryParams
from application.services.likes.rate_limiter import OPERATION_READ, OPERATION_WRITE
from application.services.service_factory import get_likes_rate_limiter, get_likes_service
from common.exception import ValidationError
from common.middleware import require_auth

logger = logging.getLogger(__name__)

likes_bp = Blueprint("likes", __name__, url_prefix="/api/user")
likes_bp.after_request(apply_cors_headers)


def admit(operation_class: str):
    """Apply the per-user limiter for ``operation_class`` before the handler runs."""

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            enforce_user_rate_limit(get_likes_rate_limiter(), operation_class)
            return await func(*args, **kwargs)

        return wrapper

    return decorator


@likes_bp.route("/likes", methods=["OPTIONS"])
async def likes_preflight():
    """CORS preflight; headers are added by the blueprint's after_request hook."""
    return APIResponse.no_content()


@likes_bp.route("/likes", methods=["GET"], provide_automatic_options=False)
@tag(["Likes"])
@rate_limit(RATE_LIMIT_LIKES_PER_IP, timedelta(minutes=1), key_function=default_rate_limit_key)
@require_auth
@admit(OPERATION_READ)
@validate_query_params(LikesQueryParams)
async def get_likes():
    """
    Read the caller's likes ledger.

    Without ``fresh`` the likes claim of the caller's token is served when
    present; with ``fresh=true`` the profile store is read (through a short
    TTL cache).

    Returns:
        200: {"likes": {...}, "timestamp": <ms>}
        401: {"error": "unauthorized"}
        429: {"error": "rate_limited"}
    """
    params: LikesQueryParams = request.validated_params
    ledger = await get_likes_service().get(
        request.user_id,
        fresh=params.fresh,
        snapshot=getattr(request, "likes_snapshot", None),
    )
    return APIResponse.success({"likes": ledger.to_blob(), "timestamp": int(time.time() * 1000)})


@likes_bp.route("/likes", methods=["POST"], provide_automatic_options=False)
@tag(["Likes"])
@rate_limit(RATE_LIMIT_LIKES_PER_IP, timedelta(minutes=1), key_function=default_rate_limit_key)
@require_auth
@admit(OPERATION_WRITE)
@validate_json(LikesActionRequest)
async def post_likes():
    """
    Toggle one like or merge a ledger into the caller's ledger.

    Returns:
        200: toggle → {"liked", "count", "likes"}; merge → {"ok": true, "likes"}
        400: invalid table, missing recordId, unsupported action
        401: {"error": "unauthorized"}
        409: {"error": "concurrent_update"}
        429: {"error": "rate_limited"}
    """
    data: LikesActionRequest = request.validated_data
    service = get_likes_service()

    if data.action == "toggle":
        category = map_table_to_category(data.table or "", strict=True)
        result = await service.toggle(request.user_id, category, data.record_id or "")
        logger.info(
            f"User {request.user_id} {'liked' if result.liked else 'unliked'} "
            f"{category}/{data.record_id}"
        )
        return APIResponse.success(result.to_dict())

    if data.action == "merge":
        incoming = LikesLedger.from_blob(data.likes, service.cap)
        merged = await service.merge(request.user_id, incoming)
        logger.info(f"Merged likes for {request.user_id}")
        return APIResponse.success({"ok": True, "likes": merged.to_blob()})

    raise ValidationError("unsupported action")
