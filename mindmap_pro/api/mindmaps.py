"""Mindmap API endpoints.

Endpoints are thin. MindmapService performs the access checks and owns the
store/cache coordination. Anonymous endpoints: the public listing and
share-token reads.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..core.auth import AuthContext, require_auth
from ..core.cache import get_cache
from ..core.config import settings
from ..database import get_db
from ..schemas.common import MessageResponse, Page
from ..schemas.mindmap import (
    MindmapCreate,
    MindmapDetailResponse,
    MindmapListItem,
    MindmapQuery,
    MindmapResponse,
    MindmapUpdate,
    PublicMindmapItem,
    PublicQuery,
    ShareCreate,
    SharedMindmapResponse,
    SharedWithMeItem,
    SharedWithMeQuery,
    ShareLinkResponse,
    ShareResponse,
)
from ..services.mindmap_service import MindmapService
from ..services.settings_service import SettingsProvider, get_settings_provider

router = APIRouter(prefix="/api/mindmaps", tags=["mindmaps"])


def get_mindmap_service(
    db: Session = Depends(get_db),
    cache=Depends(get_cache),
    provider: SettingsProvider = Depends(get_settings_provider),
) -> MindmapService:
    return MindmapService(db, cache, provider, hide_forbidden=settings.hide_forbidden_as_not_found)


@router.post("", response_model=MindmapResponse, status_code=201)
def create_mindmap(
    data: MindmapCreate,
    service: MindmapService = Depends(get_mindmap_service),
    auth: AuthContext = Depends(require_auth),
):
    """Create a mindmap owned by the caller (PRIVATE unless PUBLIC is requested)."""
    return service.create(auth.user_id, data)


@router.get("", response_model=Page[MindmapListItem])
def list_mindmaps(
    query: Annotated[MindmapQuery, Query()],
    service: MindmapService = Depends(get_mindmap_service),
    auth: AuthContext = Depends(require_auth),
):
    """List the caller's own mindmaps with search, filters and sorting."""
    return service.find_all(auth.user_id, query)


# --- Fixed-path endpoints (must be before /{mindmap_id} to avoid route shadowing) ---


@router.get("/shared-with-me", response_model=Page[SharedWithMeItem])
def list_shared_with_me(
    query: Annotated[SharedWithMeQuery, Query()],
    service: MindmapService = Depends(get_mindmap_service),
    auth: AuthContext = Depends(require_auth),
):
    return service.get_shared_with_me(auth.user_id, query)


@router.get("/public", response_model=Page[PublicMindmapItem])
def list_public_mindmaps(
    query: Annotated[PublicQuery, Query()],
    service: MindmapService = Depends(get_mindmap_service),
):
    """Public, non-archived mindmaps. No authentication required."""
    return service.get_public_mindmaps(query)


@router.get("/shared/{token}", response_model=SharedMindmapResponse)
def get_shared_mindmap(
    token: str,
    service: MindmapService = Depends(get_mindmap_service),
):
    """Read-only view for share-link holders. No authentication required."""
    return service.get_by_share_token(token)


# --- Per-mindmap endpoints ---


@router.get("/{mindmap_id}", response_model=MindmapDetailResponse)
def get_mindmap(
    mindmap_id: str,
    service: MindmapService = Depends(get_mindmap_service),
    auth: AuthContext = Depends(require_auth),
):
    return service.find_one(auth.user_id, mindmap_id)


@router.put("/{mindmap_id}", response_model=MindmapResponse)
def update_mindmap(
    mindmap_id: str,
    patch: MindmapUpdate,
    service: MindmapService = Depends(get_mindmap_service),
    auth: AuthContext = Depends(require_auth),
):
    """Partial update; only fields present in the body change. Owner only."""
    return service.update(auth.user_id, mindmap_id, patch)


@router.delete("/{mindmap_id}", response_model=MessageResponse)
def delete_mindmap(
    mindmap_id: str,
    service: MindmapService = Depends(get_mindmap_service),
    auth: AuthContext = Depends(require_auth),
):
    service.delete(auth.user_id, mindmap_id)
    return MessageResponse(message="Mindmap deleted successfully")


@router.post("/{mindmap_id}/favorite", response_model=MindmapResponse)
def toggle_favorite(
    mindmap_id: str,
    service: MindmapService = Depends(get_mindmap_service),
    auth: AuthContext = Depends(require_auth),
):
    return service.toggle_favorite(auth.user_id, mindmap_id)


@router.post("/{mindmap_id}/archive", response_model=MindmapResponse)
def toggle_archive(
    mindmap_id: str,
    service: MindmapService = Depends(get_mindmap_service),
    auth: AuthContext = Depends(require_auth),
):
    return service.toggle_archive(auth.user_id, mindmap_id)


@router.post("/{mindmap_id}/share", response_model=ShareResponse, status_code=201)
def share_mindmap(
    mindmap_id: str,
    data: ShareCreate,
    service: MindmapService = Depends(get_mindmap_service),
    auth: AuthContext = Depends(require_auth),
):
    """Grant another user view (or edit) access. Makes the mindmap SHARED."""
    return service.share(auth.user_id, mindmap_id, data)


@router.delete("/{mindmap_id}/share/{user_id}", response_model=MessageResponse)
def remove_share(
    mindmap_id: str,
    user_id: str,
    service: MindmapService = Depends(get_mindmap_service),
    auth: AuthContext = Depends(require_auth),
):
    """Revoke a grant. Removing the last one makes the mindmap PRIVATE again."""
    service.remove_share(auth.user_id, mindmap_id, user_id)
    return MessageResponse(message="Share removed successfully")


@router.post("/{mindmap_id}/share-link", response_model=ShareLinkResponse)
def generate_share_link(
    mindmap_id: str,
    service: MindmapService = Depends(get_mindmap_service),
    auth: AuthContext = Depends(require_auth),
):
    """Return the mindmap's share token, creating it on first call."""
    return service.generate_share_link(auth.user_id, mindmap_id)


@router.post("/{mindmap_id}/duplicate", response_model=MindmapResponse, status_code=201)
def duplicate_mindmap(
    mindmap_id: str,
    service: MindmapService = Depends(get_mindmap_service),
    auth: AuthContext = Depends(require_auth),
):
    """Copy any readable mindmap into a new private one owned by the caller."""
    return service.duplicate(auth.user_id, mindmap_id)
