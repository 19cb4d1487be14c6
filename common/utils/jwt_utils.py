"""
JWT Token Utilities for the likes ledger

Identity for ledger requests comes from bearer tokens issued by the identity
provider. Tokens carry:
- sub: stable user identifier
- likes: optional denormalized snapshot of the user's likes ledger, which
  may lag the profile store and is only used for non-fresh reads
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from common.config import config

logger = logging.getLogger(__name__)


class JWTConfig:
    """JWT configuration from environment variables."""

    def __init__(self):
        self.secret_key = config.AUTH_SECRET_KEY
        self.algorithm = config.AUTH_ALGORITHM
        self.audience = config.AUTH_AUDIENCE
        self.issuer = config.AUTH_ISSUER
        self.user_token_expiry_hours = 24

        if self.secret_key == "dev-secret-key-change-in-production":
            logger.warning(
                "Using default AUTH_SECRET_KEY! "
                "Set AUTH_SECRET_KEY environment variable in production!"
            )


_config = JWTConfig()


class TokenValidationError(Exception):
    """Raised when token validation fails."""

    pass


class TokenExpiredError(Exception):
    """Raised when token has expired."""

    pass


@dataclass
class AuthenticatedUser:
    """Identity extracted from a validated token."""

    user_id: str
    claims: Dict[str, Any] = field(default_factory=dict)

    @property
    def likes_snapshot(self) -> Optional[Dict[str, Any]]:
        """Denormalized likes claim, or None when the token carries none."""
        likes = self.claims.get("likes")
        return likes if isinstance(likes, dict) else None


def generate_user_token(
    user_id: str,
    likes: Optional[Dict[str, Any]] = None,
    expiry_hours: Optional[int] = None,
) -> str:
    """
    Generate a JWT token for a user.

    Used by tests and local tooling; production tokens come from the
    identity provider.

    Args:
        user_id: The user's unique identifier
        likes: Likes snapshot to embed as a custom claim (optional)
        expiry_hours: Token expiry in hours (default: 24)

    Returns:
        str: JWT token string
    """
    now = datetime.now(timezone.utc)
    expiry = now + timedelta(hours=expiry_hours or _config.user_token_expiry_hours)

    payload: Dict[str, Any] = {
        "sub": user_id,
        "iat": now,
        "exp": expiry,
    }
    if likes is not None:
        payload["likes"] = likes
    if _config.audience:
        payload["aud"] = _config.audience
    if _config.issuer:
        payload["iss"] = _config.issuer

    return jwt.encode(payload, _config.secret_key, algorithm=_config.algorithm)


def validate_token(token: str) -> dict:
    """
    Validate a JWT token and return its payload.

    Args:
        token: JWT token string

    Returns:
        dict: Decoded token payload

    Raises:
        TokenExpiredError: If token has expired
        TokenValidationError: If token is invalid
    """
    options = {"verify_aud": bool(_config.audience)}
    try:
        return jwt.decode(
            token,
            _config.secret_key,
            algorithms=[_config.algorithm],
            audience=_config.audience,
            issuer=_config.issuer,
            options=options,
        )

    except ExpiredSignatureError:
        logger.warning("Token has expired")
        raise TokenExpiredError("Token has expired")

    except InvalidTokenError as e:
        logger.warning(f"Invalid token: {e}")
        raise TokenValidationError(f"Invalid token: {e}")


def extract_bearer_token(auth_header: str) -> str:
    """
    Extract the token from an Authorization header.

    Args:
        auth_header: Authorization header value (e.g., "Bearer <token>")

    Returns:
        str: The extracted token

    Raises:
        TokenValidationError: If header format is invalid
    """
    if not auth_header:
        raise TokenValidationError("Missing Authorization header")

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise TokenValidationError("Invalid Authorization header format")

    return parts[1]


def get_user_from_header(auth_header: str) -> AuthenticatedUser:
    """
    Validate the bearer token of an Authorization header.

    Args:
        auth_header: Authorization header value (e.g., "Bearer <token>")

    Returns:
        AuthenticatedUser: user id and raw claims

    Raises:
        TokenValidationError: If header or token is invalid
        TokenExpiredError: If token has expired
    """
    payload = validate_token(extract_bearer_token(auth_header))

    user_id = payload.get("sub")
    if not user_id:
        raise TokenValidationError("Token missing user_id")

    return AuthenticatedUser(user_id=str(user_id), claims=payload)
