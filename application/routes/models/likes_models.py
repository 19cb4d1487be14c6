"""
Request and response models for the likes endpoints.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LikesQueryParams(BaseModel):
    """Query parameters of GET /likes."""

    fresh: bool = Field(default=False, description="Read the profile store instead of the token snapshot")


class LikesActionRequest(BaseModel):
    """
    Body of POST /likes.

    ``toggle`` uses table and recordId; ``merge`` uses likes. Missing fields
    are reported by the ledger with specific error codes rather than by
    schema validation.
    """

    model_config = ConfigDict(populate_by_name=True)

    action: str = Field(..., description="toggle or merge")
    table: Optional[str] = Field(default=None, description="Content table of the record")
    record_id: Optional[str] = Field(default=None, alias="recordId", description="Record to toggle")
    likes: Optional[Dict[str, Any]] = Field(default=None, description="Ledger to merge")

    @field_validator("action")
    @classmethod
    def normalize_action(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("record_id", mode="before")
    @classmethod
    def stringify_record_id(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        return str(value).strip()
