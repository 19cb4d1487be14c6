"""
Request correlation ids.

Every request gets an id (the client's X-Request-ID when usable, else a new
uuid4) that is attached to log lines of the request and echoed on the
response.
"""

import logging
import uuid

from quart import Quart, Response, g, request

from application.routes.common.constants import REQUEST_ID_HEADER, REQUEST_ID_MAX_LENGTH

logger = logging.getLogger(__name__)


def current_request_id() -> str:
    return getattr(g, "request_id", "") or ""


async def assign_request_id() -> None:
    supplied = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
    if supplied and len(supplied) <= REQUEST_ID_MAX_LENGTH and supplied.isprintable():
        g.request_id = supplied
    else:
        g.request_id = uuid.uuid4().hex
    logger.debug(f"[{g.request_id}] {request.method} {request.path}")


async def attach_request_id(response: Response) -> Response:
    request_id = current_request_id() or uuid.uuid4().hex
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


def register_request_id(app: Quart) -> None:
    """Install the request id hooks on ``app``."""
    app.before_request(assign_request_id)
    app.after_request(attach_request_id)
