"""Pydantic schemas for API validation."""

from .common import Page, PageParams, PaginationMeta, MessageResponse
from .mindmap import (
    MindmapCreate,
    MindmapUpdate,
    MindmapResponse,
    MindmapDetailResponse,
    MindmapListItem,
    ShareCreate,
    ShareResponse,
    SharedMindmapResponse,
    ShareLinkResponse,
)
from .user import (
    RegisterRequest,
    LoginRequest,
    TokenResponse,
    UserResponse,
)

__all__ = [
    "Page",
    "PageParams",
    "PaginationMeta",
    "MessageResponse",
    "MindmapCreate",
    "MindmapUpdate",
    "MindmapResponse",
    "MindmapDetailResponse",
    "MindmapListItem",
    "ShareCreate",
    "ShareResponse",
    "SharedMindmapResponse",
    "ShareLinkResponse",
    "RegisterRequest",
    "LoginRequest",
    "TokenResponse",
    "UserResponse",
]
