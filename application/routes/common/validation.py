"""
Validation utilities for route handlers.

Provides decorators for automatic request validation using Pydantic models.
"""

import logging
from functools import wraps
from typing import List, Type, TypeVar

from pydantic import BaseModel, ValidationError
from quart import request

from application.routes.common.response import APIResponse

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


def _format_errors(error: ValidationError) -> List[dict]:
    errors = []
    for err in error.errors():
        field = " -> ".join(str(loc) for loc in err["loc"])
        errors.append({"field": field, "message": err["msg"], "type": err["type"]})
    return errors


def validate_json(model: Type[T]):
    """
    Decorator to validate JSON request body against Pydantic model.

    Automatically parses and validates the request body, making validated
    data available via request.validated_data attribute. Errors raised by
    the wrapped handler itself are left to the app's error handlers.

    Args:
        model: Pydantic model class for validation

    Returns:
        Decorated function with automatic validation

    Example:
        >>> @validate_json(LikesActionRequest)
        >>> async def post_likes():
        >>>     data = request.validated_data
        >>>     return APIResponse.success({"action": data.action})

    Validation errors are returned as 400 Bad Request with detailed error
    messages.
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            json_data = await request.get_json(silent=True)

            if not isinstance(json_data, dict):
                return APIResponse.error(
                    "validation_error",
                    400,
                    "Request body required",
                    details={"expected": "application/json object"},
                )

            try:
                validated = model.model_validate(json_data)
            except ValidationError as e:
                errors = _format_errors(e)
                logger.warning(f"Validation error in {func.__name__}: {errors}")
                return APIResponse.error(
                    "validation_error", 400, "Validation failed", details={"errors": errors}
                )

            request.validated_data = validated
            return await func(*args, **kwargs)

        return wrapper

    return decorator


def validate_query_params(model: Type[T]):
    """
    Decorator to validate query parameters against Pydantic model.

    Similar to validate_json but for URL query parameters; the result is
    available via request.validated_params.

    Example:
        >>> @validate_query_params(LikesQueryParams)
        >>> async def get_likes():
        >>>     fresh = request.validated_params.fresh
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                validated = model.model_validate(dict(request.args))
            except ValidationError as e:
                errors = _format_errors(e)
                logger.warning(f"Query parameter validation error in {func.__name__}: {errors}")
                return APIResponse.error(
                    "validation_error", 400, "Invalid query parameters", details={"errors": errors}
                )

            request.validated_params = validated
            return await func(*args, **kwargs)

        return wrapper

    return decorator
