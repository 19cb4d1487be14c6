"""
Likes Ledger Entity

Per-user sets of liked record ids, grouped by a fixed, closed set of
categories. Stored inside the user's profile blob under the ``likes`` key.

Each category is an ordered list without duplicates: insertion order is kept
so that the oldest ids are evicted first once a category exceeds its cap.
"""

import logging
from typing import Any, ClassVar, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from common.constants import LIKE_CATEGORIES, LIKES_CAP_PER_CATEGORY
from common.exception import InvalidCategory

logger = logging.getLogger(__name__)

# Substrings of table names / legacy storage keys, checked in order
_CATEGORY_ALIASES: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("book",), "books"),
    (("ashaar", "ashar"), "ashaar"),
    (("ghazlen", "ghazal"), "ghazlen"),
    (("nazm",), "nazmen"),
    (("rubai",), "rubai"),
    (("shaer", "shura", "profile"), "shaer"),
)


def map_table_to_category(table_or_storage_key: str, strict: bool = True) -> str:
    """
    Map a content table name or legacy storage key to a like category.

    Args:
        table_or_storage_key: e.g. "Ghazlen", "E-Books", "Shura", "ashaar"
        strict: Raise InvalidCategory for unknown names instead of
            defaulting to "ashaar"

    Returns:
        Category name from LIKE_CATEGORIES

    Raises:
        InvalidCategory: If strict and the name matches no category

    Example:
        >>> map_table_to_category("Ghazlen")
        'ghazlen'
        >>> map_table_to_category("Shura")
        'shaer'
    """
    key = str(table_or_storage_key or "").strip().lower()
    if key:
        for needles, category in _CATEGORY_ALIASES:
            if any(needle in key for needle in needles):
                return category
    if strict:
        raise InvalidCategory(f"unknown likes table: {table_or_storage_key!r}")
    logger.warning(f"Unknown likes key {table_or_storage_key!r}, defaulting to ashaar")
    return "ashaar"


def validate_category(category: Optional[str]) -> str:
    """
    Ensure ``category`` is one of LIKE_CATEGORIES.

    Raises:
        InvalidCategory: If it is not
    """
    if category not in LIKE_CATEGORIES:
        raise InvalidCategory(f"unknown likes category: {category!r}")
    return category


def unique_ids(values: Any, cap: int = LIKES_CAP_PER_CATEGORY) -> List[str]:
    """
    Coerce a stored value into a capped, duplicate-free list of ids.

    Non-list values become an empty list; entries are stringified and
    stripped, empties dropped, first occurrence wins, and only the newest
    ``cap`` ids are kept.
    """
    if not isinstance(values, (list, tuple)):
        return []
    seen = set()
    ids: List[str] = []
    for value in values:
        if value is None or isinstance(value, (dict, list)):
            continue
        item = str(value).strip()
        if item and item not in seen:
            seen.add(item)
            ids.append(item)
    return ids[-cap:] if cap > 0 else ids


class LikesLedger(BaseModel):
    """
    Liked record ids of one user.

    Construction never fails on malformed category values: anything that is
    not a list of scalars is sanitized. Unknown keys are ignored. The
    per-category cap is applied by from_blob, capped and the copy helpers.
    """

    model_config = ConfigDict(extra="ignore")

    CATEGORIES: ClassVar[Tuple[str, ...]] = LIKE_CATEGORIES

    books: List[str] = Field(default_factory=list, description="Liked e-books")
    ashaar: List[str] = Field(default_factory=list, description="Liked couplets")
    ghazlen: List[str] = Field(default_factory=list, description="Liked ghazals")
    nazmen: List[str] = Field(default_factory=list, description="Liked nazms")
    rubai: List[str] = Field(default_factory=list, description="Liked rubais")
    shaer: List[str] = Field(default_factory=list, description="Liked poet profiles")

    @field_validator("books", "ashaar", "ghazlen", "nazmen", "rubai", "shaer", mode="before")
    @classmethod
    def sanitize_ids(cls, value: Any) -> List[str]:
        """Drop duplicates and junk entries. Capping is left to from_blob/capped."""
        return unique_ids(value, cap=0)

    @classmethod
    def from_blob(cls, blob: Any, cap: int = LIKES_CAP_PER_CATEGORY) -> "LikesLedger":
        """
        Build a ledger from an untrusted stored value.

        Args:
            blob: Whatever is stored under the profile's ``likes`` key
            cap: Per-category cap to enforce

        Returns:
            A structurally valid, possibly empty ledger
        """
        if blob is None:
            return cls()
        if not isinstance(blob, dict):
            logger.warning(f"Malformed likes blob of type {type(blob).__name__}, using empty ledger")
            return cls()
        ledger = cls.model_validate(
            {category: blob.get(category) for category in cls.CATEGORIES}
        )
        return ledger.capped(cap)

    def ids(self, category: str) -> List[str]:
        """Return a copy of one category's ids."""
        validate_category(category)
        return list(getattr(self, category))

    def contains(self, category: str, record_id: str) -> bool:
        return record_id in getattr(self, category, [])

    def with_ids(self, category: str, ids: Iterable[str], cap: int = LIKES_CAP_PER_CATEGORY) -> "LikesLedger":
        """Return a copy with one category replaced."""
        validate_category(category)
        return self.model_copy(update={category: unique_ids(list(ids), cap)})

    def toggled(self, category: str, record_id: str, cap: int = LIKES_CAP_PER_CATEGORY) -> Tuple["LikesLedger", bool]:
        """
        Flip membership of ``record_id`` in ``category``.

        Returns:
            (new ledger, liked) where liked tells whether the id is now present
        """
        ids = self.ids(category)
        if record_id in ids:
            ids.remove(record_id)
            return self.with_ids(category, ids, cap), False
        ids.append(record_id)
        return self.with_ids(category, ids, cap), True

    def union(self, other: "LikesLedger", cap: int = LIKES_CAP_PER_CATEGORY) -> "LikesLedger":
        """Per-category union; ids of ``self`` come first, then new ids of ``other``."""
        return LikesLedger(
            **{
                category: unique_ids(getattr(self, category) + getattr(other, category), cap)
                for category in self.CATEGORIES
            }
        )

    def capped(self, cap: int) -> "LikesLedger":
        return LikesLedger(
            **{category: unique_ids(getattr(self, category), cap) for category in self.CATEGORIES}
        )

    def is_empty(self) -> bool:
        return not any(getattr(self, category) for category in self.CATEGORIES)

    def to_blob(self) -> Dict[str, List[str]]:
        return {category: list(getattr(self, category)) for category in self.CATEGORIES}
