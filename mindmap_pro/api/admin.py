"""Admin panel endpoints. Every route requires the ADMIN role.

    /api/admin/stats                  dashboard counters
    /api/admin/users[/{id}]           user management
    /api/admin/mindmaps[/{id}]        content moderation
    /api/admin/logs                   activity log
    /api/admin/settings               runtime settings
    /api/admin/cache[/clear]          cache statistics and clearing
"""

from typing import Annotated, Any, Dict

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..core.auth import AuthContext, require_admin
from ..core.cache import get_cache
from ..database import get_db
from ..schemas.admin import (
    CacheClearRequest,
    CacheClearResponse,
    CacheStatsResponse,
    DashboardStats,
    SettingsUpdate,
)
from ..schemas.common import MessageResponse, Page
from ..schemas.mindmap import (
    AdminMindmapItem,
    AdminMindmapQuery,
    AdminMindmapUpdate,
    MindmapDetailResponse,
    MindmapResponse,
)
from ..schemas.user import (
    ActivityLogQuery,
    ActivityLogResponse,
    AdminUserCreate,
    AdminUserItem,
    AdminUserQuery,
    AdminUserUpdate,
    UserResponse,
)
from ..services.admin_service import AdminService
from ..services.settings_service import SettingsProvider, get_settings_provider

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def get_admin_service(
    db: Session = Depends(get_db),
    cache=Depends(get_cache),
    provider: SettingsProvider = Depends(get_settings_provider),
) -> AdminService:
    return AdminService(db, cache, provider)


@router.get("/stats", response_model=DashboardStats)
def dashboard_stats(service: AdminService = Depends(get_admin_service)):
    return service.get_dashboard_stats()


# --- Users ---


@router.get("/users", response_model=Page[AdminUserItem])
def list_users(
    query: Annotated[AdminUserQuery, Query()],
    service: AdminService = Depends(get_admin_service),
):
    return service.list_users(query)


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(
    data: AdminUserCreate,
    service: AdminService = Depends(get_admin_service),
    auth: AuthContext = Depends(require_admin),
):
    return service.create_user(auth.user_id, data)


@router.get("/users/{user_id}", response_model=AdminUserItem)
def get_user(user_id: str, service: AdminService = Depends(get_admin_service)):
    return service.get_user(user_id)


@router.put("/users/{user_id}", response_model=UserResponse)
def update_user(
    user_id: str,
    data: AdminUserUpdate,
    service: AdminService = Depends(get_admin_service),
    auth: AuthContext = Depends(require_admin),
):
    return service.update_user(auth.user_id, user_id, data)


@router.delete("/users/{user_id}", response_model=MessageResponse)
def delete_user(
    user_id: str,
    service: AdminService = Depends(get_admin_service),
    auth: AuthContext = Depends(require_admin),
):
    service.delete_user(auth.user_id, user_id)
    return MessageResponse(message="User deleted successfully")


# --- Mindmaps ---


@router.get("/mindmaps", response_model=Page[AdminMindmapItem])
def list_mindmaps(
    query: Annotated[AdminMindmapQuery, Query()],
    service: AdminService = Depends(get_admin_service),
):
    return service.list_mindmaps(query)


@router.get("/mindmaps/{mindmap_id}", response_model=MindmapDetailResponse)
def get_mindmap(mindmap_id: str, service: AdminService = Depends(get_admin_service)):
    return service.get_mindmap(mindmap_id)


@router.put("/mindmaps/{mindmap_id}", response_model=MindmapResponse)
def update_mindmap(
    mindmap_id: str,
    data: AdminMindmapUpdate,
    service: AdminService = Depends(get_admin_service),
    auth: AuthContext = Depends(require_admin),
):
    return service.update_mindmap(auth.user_id, mindmap_id, data)


@router.delete("/mindmaps/{mindmap_id}", response_model=MessageResponse)
def delete_mindmap(
    mindmap_id: str,
    service: AdminService = Depends(get_admin_service),
    auth: AuthContext = Depends(require_admin),
):
    service.delete_mindmap(auth.user_id, mindmap_id)
    return MessageResponse(message="Mindmap deleted successfully")


# --- Activity logs ---


@router.get("/logs", response_model=Page[ActivityLogResponse])
def list_logs(
    query: Annotated[ActivityLogQuery, Query()],
    service: AdminService = Depends(get_admin_service),
):
    return service.get_logs(query)


# --- Settings ---


@router.get("/settings", response_model=Dict[str, Any])
def get_settings(service: AdminService = Depends(get_admin_service)):
    return service.get_settings()


@router.put("/settings", response_model=Dict[str, Any])
def update_settings(
    data: SettingsUpdate,
    service: AdminService = Depends(get_admin_service),
    auth: AuthContext = Depends(require_admin),
):
    return service.update_settings(auth.user_id, data.settings)


# --- Cache ---


@router.get("/cache", response_model=CacheStatsResponse)
def cache_stats(service: AdminService = Depends(get_admin_service)):
    return service.get_cache_stats()


@router.post("/cache/clear", response_model=CacheClearResponse)
def clear_cache(
    data: CacheClearRequest,
    service: AdminService = Depends(get_admin_service),
    auth: AuthContext = Depends(require_admin),
):
    """Delete keys matching ``pattern`` (glob), or flush everything when omitted."""
    return service.clear_cache(auth.user_id, data.pattern)
