"""
Application entities package.

Contains the domain entities of the likes ledger.
"""

from application.entity.likes import LikesLedger, map_table_to_category

__all__ = ["LikesLedger", "map_table_to_category"]
