"""
Common utilities for route handlers.

Provides shared functionality for the likes blueprint:
- CORS and request id hooks
- Rate limiting utilities
- Response formatting and error handlers
- Request validation decorators
"""
