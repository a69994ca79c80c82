"""Admin service: user management, moderation, settings and cache control.

Every mutating operation is logged with an ``ADMIN_*`` action. Access is
enforced at the router with ``require_admin``.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..database import commit_or_raise
from ..exceptions import EmailAlreadyRegisteredError, ValidationError
from ..models import Role, Visibility
from ..repositories import MindmapRepository, UserRepository
from ..schemas.admin import CacheClearResponse, CacheStatsResponse, DashboardStats
from ..schemas.common import Page, PaginationMeta
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
from . import activity_service, user_service
from .auth_service import hash_password
from .mindmap_service import MindmapService
from .settings_service import SettingsProvider

logger = logging.getLogger(__name__)

# Keys returned by the cache statistics endpoint.
CACHE_STATS_SAMPLE = 100


class AdminService:
    def __init__(self, db: Session, cache, settings_provider: Optional[SettingsProvider] = None):
        self.db = db
        self.cache = cache
        self.settings = settings_provider or SettingsProvider(db, cache)
        self.user_repo = UserRepository(db)
        self.mindmap_repo = MindmapRepository(db)
        self.mindmaps = MindmapService(db, cache, self.settings)

    # --- Users ------------------------------------------------------------

    def _user_item(self, user, mindmap_count: int) -> AdminUserItem:
        item = AdminUserItem.model_validate(user)
        item.mindmap_count = mindmap_count
        return item

    def list_users(self, query: AdminUserQuery) -> Page[AdminUserItem]:
        users, total = self.user_repo.list_filtered(query)
        counts = self.user_repo.mindmap_counts([u.id for u in users])
        return Page[AdminUserItem](
            data=[self._user_item(u, counts.get(u.id, 0)) for u in users],
            pagination=PaginationMeta.build(query, total),
        )

    def get_user(self, user_id: str) -> AdminUserItem:
        user = self.user_repo.get_by_id(user_id)
        return self._user_item(user, self.mindmap_repo.count_by_owner(user_id))

    def create_user(self, admin_id: str, data: AdminUserCreate) -> UserResponse:
        if self.user_repo.get_by_email(data.email) is not None:
            raise EmailAlreadyRegisteredError(data.email)

        user = self.user_repo.create(
            email=data.email,
            password_hash=hash_password(data.password),
            first_name=data.first_name,
            last_name=data.last_name,
            role=data.role.value,
            is_active=data.is_active,
            is_verified=True,
        )
        commit_or_raise(self.db)

        response = UserResponse.model_validate(user)
        activity_service.record(
            self.db, "ADMIN_CREATE_USER", "User", user.id,
            user_id=admin_id, metadata={"email": user.email, "role": user.role},
        )
        return response

    def update_user(self, admin_id: str, user_id: str, data: AdminUserUpdate) -> UserResponse:
        user = self.user_repo.get_by_id(user_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)

        if user_id == admin_id:
            if changes.get("role", Role.ADMIN) != Role.ADMIN:
                raise ValidationError("Admins cannot remove their own admin role", field="role")
            if changes.get("is_active") is False:
                raise ValidationError("Admins cannot deactivate themselves", field="is_active")

        password = changes.pop("password", None)
        if password:
            user.password_hash = hash_password(password)
            user.refresh_token_hash = None
        if "role" in changes:
            changes["role"] = Role(changes["role"]).value
        for field, value in changes.items():
            setattr(user, field, value)
        if changes.get("is_verified"):
            user.verify_token = None
        commit_or_raise(self.db)

        response = UserResponse.model_validate(user)
        fields = sorted(changes) + (["password"] if password else [])
        activity_service.record(
            self.db, "ADMIN_UPDATE_USER", "User", user_id,
            user_id=admin_id, metadata={"fields": fields},
        )
        return response

    def delete_user(self, admin_id: str, user_id: str) -> None:
        if user_id == admin_id:
            raise ValidationError("Admins cannot delete their own account from the admin panel")
        user_service.delete_user(self.db, self.cache, user_id, admin_id, action="ADMIN_DELETE_USER")

    # --- Mindmap moderation -------------------------------------------------

    def list_mindmaps(self, query: AdminMindmapQuery) -> Page[AdminMindmapItem]:
        return self.mindmaps.admin_list(query)

    def get_mindmap(self, mindmap_id: str) -> MindmapDetailResponse:
        return self.mindmaps.admin_get(mindmap_id)

    def update_mindmap(self, admin_id: str, mindmap_id: str, data: AdminMindmapUpdate) -> MindmapResponse:
        return self.mindmaps.admin_update(admin_id, mindmap_id, data)

    def delete_mindmap(self, admin_id: str, mindmap_id: str) -> None:
        self.mindmaps.admin_delete(admin_id, mindmap_id)

    # --- Activity logs --------------------------------------------------------

    def get_logs(self, query: ActivityLogQuery) -> Page[ActivityLogResponse]:
        return activity_service.get_logs(self.db, query)

    # --- Settings --------------------------------------------------------------

    def get_settings(self) -> Dict[str, Any]:
        return self.settings.get_all()

    def update_settings(self, admin_id: str, values: Dict[str, Any]) -> Dict[str, Any]:
        result = self.settings.update(values)
        activity_service.record(
            self.db, "UPDATE_SETTINGS", "Settings",
            user_id=admin_id, metadata={"keys": sorted(values)},
        )
        return result

    # --- Cache -----------------------------------------------------------------

    def get_cache_stats(self) -> CacheStatsResponse:
        keys = sorted(self.cache.keys("*"))
        return CacheStatsResponse(total_keys=len(keys), keys=keys[:CACHE_STATS_SAMPLE])

    def clear_cache(self, admin_id: str, pattern: Optional[str] = None) -> CacheClearResponse:
        """Delete keys matching a glob *pattern*, or flush everything."""
        if pattern:
            keys = self.cache.keys(pattern)
            deleted = self.cache.delete(*keys) if keys else 0
            response = CacheClearResponse(
                message=f"Cleared {deleted} keys matching {pattern}", deleted=deleted
            )
        else:
            self.cache.flush_all()
            response = CacheClearResponse(message="Cache flushed")
        logger.info("[Cache] %s", response.message)

        activity_service.record(
            self.db, "CLEAR_CACHE", "Cache",
            user_id=admin_id, metadata={"pattern": pattern or "*"},
        )
        return response

    # --- Dashboard -------------------------------------------------------------

    def get_dashboard_stats(self) -> DashboardStats:
        return DashboardStats(
            total_users=self.user_repo.count_all(),
            active_users=self.user_repo.count_all(active_only=True),
            total_mindmaps=self.mindmap_repo.count_all(),
            public_mindmaps=self.mindmap_repo.count_all(Visibility.PUBLIC),
            recent_users=[UserResponse.model_validate(u) for u in self.user_repo.recent(5)],
            recent_activity=[
                ActivityLogResponse.model_validate(e)
                for e in activity_service.get_recent(self.db, 10)
            ],
        )
