"""
Application routes package.

Contains the API endpoint blueprints of the likes ledger.
"""

from application.routes.likes import likes_bp

__all__ = ["likes_bp"]
