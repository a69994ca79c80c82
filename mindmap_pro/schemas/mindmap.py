"""Mindmap schemas."""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ..models.mindmap import Visibility
from .common import PageParams

SortField = Literal["created_at", "updated_at", "title"]
SortOrder = Literal["asc", "desc"]


def _strip_title(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip()
    if not v:
        raise ValueError("Title cannot be blank")
    return v


class MindmapCreate(BaseModel):
    """Schema for creating a mindmap."""
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    visibility: Optional[Visibility] = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        return _strip_title(v)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "title": "My First Mindmap",
                    "description": "A description of my mindmap",
                    "data": {"nodes": [{"id": "root", "label": "Idea"}], "edges": []},
                }
            ]
        }
    }


# Columns that may be omitted from a patch but never set to null.
_NON_NULLABLE_PATCH_FIELDS = ("title", "data", "visibility", "is_favorite", "is_archived")


class MindmapUpdate(BaseModel):
    """Partial update. Only fields present in the request body are applied."""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    thumbnail: Optional[str] = None
    visibility: Optional[Visibility] = None
    is_favorite: Optional[bool] = None
    is_archived: Optional[bool] = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: Optional[str]) -> Optional[str]:
        return _strip_title(v)

    @model_validator(mode="after")
    def reject_null_required_fields(self) -> "MindmapUpdate":
        for name in _NON_NULLABLE_PATCH_FIELDS:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class AdminMindmapUpdate(BaseModel):
    """Moderation patch an admin may apply to any mindmap."""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    visibility: Optional[Visibility] = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: Optional[str]) -> Optional[str]:
        return _strip_title(v)

    @model_validator(mode="after")
    def reject_null_required_fields(self) -> "AdminMindmapUpdate":
        for name in ("title", "visibility"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class ShareCreate(BaseModel):
    """Grant another user access to a mindmap."""
    email: str = Field(..., max_length=255)
    can_edit: bool = False

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("Valid email address required")
        return v


class MindmapQuery(PageParams):
    """Filters for listing one's own mindmaps."""
    search: Optional[str] = None
    visibility: Optional[Visibility] = None
    is_favorite: Optional[bool] = None
    is_archived: bool = False
    sort: SortField = "updated_at"
    order: SortOrder = "desc"


class PublicQuery(PageParams):
    search: Optional[str] = None


class SharedWithMeQuery(PageParams):
    is_archived: bool = False


class AdminMindmapQuery(PageParams):
    search: Optional[str] = None
    visibility: Optional[Visibility] = None
    user_id: Optional[str] = None


# --- Responses ---------------------------------------------------------


class UserSummary(BaseModel):
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    model_config = {"from_attributes": True}


class OwnerSummary(BaseModel):
    """Owner identity safe to show to other users (no email)."""
    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    model_config = {"from_attributes": True}


class ShareResponse(BaseModel):
    mindmap_id: str
    user_id: str
    can_edit: bool
    created_at: Optional[datetime] = None
    user: Optional[UserSummary] = None

    model_config = {"from_attributes": True}


class MindmapResponse(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    data: Dict[str, Any] = {}
    thumbnail: Optional[str] = None
    visibility: Visibility
    is_favorite: bool
    is_archived: bool
    share_token: Optional[str] = None
    user_id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class MindmapDetailResponse(MindmapResponse):
    """Full mindmap as returned by get-by-id, and as stored in the cache.

    Non-owners receive it with ``share_token`` and ``shares`` stripped.
    """
    owner: Optional[UserSummary] = None
    shares: List[ShareResponse] = []


class MindmapListItem(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    thumbnail: Optional[str] = None
    visibility: Visibility
    is_favorite: bool
    is_archived: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class SharedWithMeItem(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    thumbnail: Optional[str] = None
    updated_at: Optional[datetime] = None
    can_edit: bool
    owner: UserSummary


class PublicMindmapItem(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    thumbnail: Optional[str] = None
    updated_at: Optional[datetime] = None
    owner: OwnerSummary


class AdminMindmapItem(MindmapListItem):
    user_id: str
    owner: UserSummary


class SharedMindmapResponse(BaseModel):
    """Read-only projection served to anonymous share-link holders.

    Carries no visibility, no share list, no owner email.
    """
    title: str
    description: Optional[str] = None
    data: Dict[str, Any] = {}
    thumbnail: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    owner_name: str


class ShareLinkResponse(BaseModel):
    share_token: str
