"""
Constants used across route handlers.

Centralizes magic numbers and configuration values to improve maintainability.
"""

# ============================================================================
# Rate Limiting Defaults
# ============================================================================

# Coarse per-IP guard in front of the per-user likes limiter (requests per minute)
RATE_LIMIT_LIKES_PER_IP = 300

# ============================================================================
# CORS
# ============================================================================

LIKES_CORS_METHODS = "GET,POST,OPTIONS"
LIKES_CORS_HEADERS = "Content-Type, Authorization"

# ============================================================================
# Request Tracing
# ============================================================================

REQUEST_ID_HEADER = "X-Request-ID"

# Longer client-supplied ids are replaced by a generated one
REQUEST_ID_MAX_LENGTH = 128
