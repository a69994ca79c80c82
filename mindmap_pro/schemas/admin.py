"""Admin panel schemas: settings, cache and dashboard."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .user import ActivityLogResponse, UserResponse


class SettingsUpdate(BaseModel):
    """Subset of runtime settings to upsert, as ``{key: value}``."""
    settings: Dict[str, Any] = Field(..., min_length=1)


class CacheStatsResponse(BaseModel):
    total_keys: int
    keys: List[str]


class CacheClearRequest(BaseModel):
    """Glob-style pattern (``mindmap:*``); omit to flush the whole cache."""
    pattern: Optional[str] = Field(None, min_length=1)


class CacheClearResponse(BaseModel):
    message: str
    deleted: Optional[int] = None


class DashboardStats(BaseModel):
    total_users: int
    active_users: int
    total_mindmaps: int
    public_mindmaps: int
    recent_users: List[UserResponse]
    recent_activity: List[ActivityLogResponse]
