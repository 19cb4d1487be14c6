import sys
from pathlib import Path

# Load environment variables FIRST, before any other imports
from dotenv import load_dotenv
load_dotenv()

# Add project root to path (for IDE compatibility when running directly)
project_root = Path(__file__).parent.parent.resolve()
project_root_str = str(project_root)

if sys.path and Path(sys.path[0]).name == 'application':
    sys.path[0] = project_root_str
elif project_root_str not in sys.path:
    sys.path.insert(0, project_root_str)

import logging
import os
from typing import Dict

from quart import Quart
from quart_rate_limiter import RateLimiter
from quart_schema import QuartSchema, ResponseSchemaValidationError, hide

from application.routes import likes_bp
from application.routes.common.error_handlers import register_error_handlers
from application.routes.common.request_id import register_request_id
from application.services.service_factory import get_service_factory

# Configure root logging to stdout, plus a file when APP_LOG_FILE is set.
log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
log_handlers: list = [logging.StreamHandler(sys.stdout)]
log_file = os.getenv("APP_LOG_FILE")
if log_file:
    log_handlers.append(logging.FileHandler(log_file, mode="a"))

logging.basicConfig(
    level=os.getenv("APP_LOG_LEVEL", "INFO").upper(),
    format=log_format,
    handlers=log_handlers,
)

logger = logging.getLogger(__name__)

app = Quart(__name__)

# Initialize rate limiter
RateLimiter(app)

QuartSchema(
    app,
    info={"title": "Likes Ledger", "version": "1.0.0"},
    tags=[
        {"name": "Likes", "description": "Per-user liked records"},
        {"name": "System", "description": "System and health endpoints"},
    ],
    security=[{"bearerAuth": []}],
    security_schemes={
        "bearerAuth": {
            "type": "http",
            "scheme": "bearer",
        }
    },
)


@app.errorhandler(ResponseSchemaValidationError)
async def handle_response_validation_error(
    error: ResponseSchemaValidationError,
) -> tuple[Dict[str, str], int]:
    logger.error(f"Response failed schema validation: {error}")
    return {"error": "VALIDATION"}, 500


register_error_handlers(app)
register_request_id(app)

# Register blueprints
app.register_blueprint(likes_bp)  # URL prefix already set in blueprint


@app.route("/favicon.ico")
@hide
def favicon() -> tuple[str, int]:
    return "", 200


@app.route("/health")
@hide
async def health() -> tuple[Dict[str, str], int]:
    return {"status": "ok"}, 200


@app.before_serving
async def startup() -> None:
    """Build the likes services eagerly so configuration errors fail the boot."""
    factory = get_service_factory()
    likes_service = factory.likes_service
    limiter = factory.likes_rate_limiter
    logger.info(
        f"Likes ledger ready on {type(likes_service.profile_store).__name__} "
        f"(cap {likes_service.cap}, limits {limiter.rules})"
    )


@app.after_serving
async def shutdown() -> None:
    logger.info("Application shutdown complete")
