"""Mindmap service: deep module for the mindmap lifecycle.

Owns CRUD, sharing, share links, duplication and listings. Every operation
follows the same order: authorize, write to the store, commit, then delete
the cached snapshot, then record activity. Cache and activity failures are
logged by their own layers and never fail the operation.
"""

import copy
import logging
import secrets
from typing import Iterable, List, Optional

import sqlalchemy.exc
from sqlalchemy.orm import Session

from ..database import commit_or_raise
from ..exceptions import (
    ForbiddenError,
    MindmapNotFoundError,
    MindmapProException,
    QuotaExceededError,
    SelfShareError,
    ShareNotFoundError,
    StorageError,
    UserNotFoundError,
    ValidationError,
)
from ..models import Mindmap, Visibility
from ..repositories import MindmapRepository, ShareRepository, UserRepository
from ..schemas.common import Page, PaginationMeta
from ..schemas.mindmap import (
    AdminMindmapItem,
    AdminMindmapQuery,
    AdminMindmapUpdate,
    MindmapCreate,
    MindmapDetailResponse,
    MindmapListItem,
    MindmapQuery,
    MindmapResponse,
    MindmapUpdate,
    OwnerSummary,
    PublicMindmapItem,
    PublicQuery,
    ShareCreate,
    SharedMindmapResponse,
    SharedWithMeItem,
    SharedWithMeQuery,
    ShareLinkResponse,
    ShareResponse,
    UserSummary,
)
from . import activity_service
from .mindmap_cache import MindmapCache
from .permission_service import (
    can_read,
    can_use_cached_snapshot,
    derive_visibility,
    evaluate_access,
)
from .settings_service import SettingsProvider

logger = logging.getLogger(__name__)

ENTITY = "Mindmap"
COPY_SUFFIX = " (Copy)"
TITLE_MAX_LENGTH = 255

# 16 random bytes -> 32 hex chars, 128 bits of entropy.
SHARE_TOKEN_BYTES = 16
# Retries when a freshly minted token collides with an existing one.
SHARE_TOKEN_ATTEMPTS = 3


def _copy_title(title: str) -> str:
    return title[: TITLE_MAX_LENGTH - len(COPY_SUFFIX)] + COPY_SUFFIX


class MindmapService:
    """Deep module for mindmap operations.

    Callers pass the authenticated user id; the service performs the access
    check itself. Methods return response schemas, never ORM objects.

    With ``hide_forbidden`` set, every denial on an existing mindmap is
    reported as MindmapNotFoundError so ids cannot be enumerated.
    """

    def __init__(
        self,
        db: Session,
        cache,
        settings_provider: Optional[SettingsProvider] = None,
        hide_forbidden: bool = False,
    ):
        self.db = db
        self.hide_forbidden = hide_forbidden
        self.mindmap_repo = MindmapRepository(db)
        self.share_repo = ShareRepository(db)
        self.user_repo = UserRepository(db)
        self.snapshots = MindmapCache(cache)
        self.settings = settings_provider or SettingsProvider(db, cache)

    # --- Internal helpers -------------------------------------------------

    def _deny(self, mindmap_id: str, message: str) -> MindmapProException:
        if self.hide_forbidden:
            return MindmapNotFoundError(mindmap_id)
        return ForbiddenError(message)

    def _get_owned_or_raise(self, mindmap_id: str, requester_id: str) -> Mindmap:
        """Fetch by id and owner in one query.

        On a miss, a second lookup decides between NotFound and Forbidden.
        Mindmaps the requester can read are always Forbidden; their existence
        is no secret.
        """
        mindmap = self.mindmap_repo.get_owned(mindmap_id, requester_id)
        if mindmap is not None:
            return mindmap
        existing = self.mindmap_repo.get_with_access_data(mindmap_id)
        if existing is None:
            raise MindmapNotFoundError(mindmap_id)
        level = evaluate_access(existing.user_id, existing.visibility, existing.shares, requester_id)
        if can_read(level):
            raise ForbiddenError("Only the owner can modify this mindmap")
        raise self._deny(mindmap_id, "Only the owner can modify this mindmap")

    def _check_quota(self, owner_id: str) -> None:
        limit = self.settings.max_mindmaps_per_user()
        if limit is not None and self.mindmap_repo.count_by_owner(owner_id) >= limit:
            raise QuotaExceededError(limit)

    def _sync_visibility(self, mindmap: Mindmap) -> Visibility:
        """Re-derive visibility from a fresh grant count (pending changes flushed)."""
        grant_count = self.share_repo.count_for_mindmap(mindmap.id)
        target = derive_visibility(mindmap.visibility, grant_count)
        if mindmap.visibility != target.value:
            logger.info(f"Mindmap {mindmap.id} visibility {mindmap.visibility} -> {target.value}")
            mindmap.visibility = target.value
        return target

    @staticmethod
    def _check_requested_visibility(requested: Visibility, grant_count: int) -> None:
        if requested == Visibility.SHARED and grant_count == 0:
            raise ValidationError(
                "A mindmap becomes SHARED by sharing it with a user", field="visibility"
            )
        if requested != Visibility.SHARED and grant_count > 0:
            raise ValidationError(
                "Remove all shares before changing the visibility of a shared mindmap",
                field="visibility",
            )

    @staticmethod
    def _project(detail: MindmapDetailResponse, requester_id: Optional[str]) -> MindmapDetailResponse:
        """Strip owner-only fields for everyone but the owner."""
        if requester_id == detail.user_id:
            return detail
        return detail.model_copy(update={"share_token": None, "shares": []})

    # --- Core operations --------------------------------------------------

    def create(self, owner_id: str, data: MindmapCreate) -> MindmapResponse:
        visibility = data.visibility or Visibility.PRIVATE
        if visibility == Visibility.SHARED:
            raise ValidationError(
                "A new mindmap cannot be SHARED; share it with a user instead",
                field="visibility",
            )
        self._check_quota(owner_id)

        mindmap = self.mindmap_repo.create(
            owner_id=owner_id,
            title=data.title,
            description=data.description,
            data=data.data,
            visibility=visibility,
        )
        commit_or_raise(self.db)
        logger.info(f"Created mindmap {mindmap.id} for user {owner_id}")

        response = MindmapResponse.model_validate(mindmap)
        activity_service.record(self.db, "CREATE_MINDMAP", ENTITY, mindmap.id, user_id=owner_id)
        return response

    def find_one(self, requester_id: Optional[str], mindmap_id: str) -> MindmapDetailResponse:
        """Read one mindmap, serving the cache only when it proves access.

        Raises:
            MindmapNotFoundError: No mindmap with this id.
            ForbiddenError: The requester may not read it (MindmapNotFoundError
                when ``hide_forbidden`` is set).
        """
        use_cache = self.settings.cache_enabled()
        if use_cache:
            snapshot = self.snapshots.get(mindmap_id)
            if snapshot is not None and can_use_cached_snapshot(
                snapshot.user_id, snapshot.visibility, requester_id
            ):
                return self._project(snapshot, requester_id)

        mindmap = self.mindmap_repo.get_with_access_data(mindmap_id)
        if mindmap is None:
            raise MindmapNotFoundError(mindmap_id)

        level = evaluate_access(mindmap.user_id, mindmap.visibility, mindmap.shares, requester_id)
        if not can_read(level):
            raise self._deny(mindmap_id, "You do not have access to this mindmap")

        detail = MindmapDetailResponse.model_validate(mindmap)
        if use_cache:
            self.snapshots.put(detail, self.settings.cache_ttl())
        return self._project(detail, requester_id)

    def update(self, owner_id: str, mindmap_id: str, patch: MindmapUpdate) -> MindmapResponse:
        mindmap = self._get_owned_or_raise(mindmap_id, owner_id)

        changes = patch.model_dump(exclude_unset=True)
        if "visibility" in changes:
            requested = Visibility(changes["visibility"])
            self._check_requested_visibility(
                requested, self.share_repo.count_for_mindmap(mindmap_id)
            )
            changes["visibility"] = requested.value

        for field, value in changes.items():
            setattr(mindmap, field, value)
        commit_or_raise(self.db)
        self.snapshots.invalidate(mindmap_id)

        response = MindmapResponse.model_validate(mindmap)
        activity_service.record(
            self.db, "UPDATE_MINDMAP", ENTITY, mindmap_id,
            user_id=owner_id, metadata={"fields": sorted(changes)},
        )
        return response

    def delete(self, owner_id: str, mindmap_id: str) -> None:
        mindmap = self._get_owned_or_raise(mindmap_id, owner_id)
        title = mindmap.title

        self.db.delete(mindmap)
        commit_or_raise(self.db)
        self.snapshots.invalidate(mindmap_id)
        logger.info(f"Deleted mindmap {mindmap_id}")

        activity_service.record(
            self.db, "DELETE_MINDMAP", ENTITY, mindmap_id,
            user_id=owner_id, metadata={"title": title},
        )

    def _toggle(self, owner_id: str, mindmap_id: str, column: str) -> MindmapResponse:
        # Read-then-write of a single column; concurrent toggles are last-write-wins.
        mindmap = self._get_owned_or_raise(mindmap_id, owner_id)
        setattr(mindmap, column, not getattr(mindmap, column))
        commit_or_raise(self.db)
        self.snapshots.invalidate(mindmap_id)
        return MindmapResponse.model_validate(mindmap)

    def toggle_favorite(self, owner_id: str, mindmap_id: str) -> MindmapResponse:
        return self._toggle(owner_id, mindmap_id, "is_favorite")

    def toggle_archive(self, owner_id: str, mindmap_id: str) -> MindmapResponse:
        return self._toggle(owner_id, mindmap_id, "is_archived")

    # --- Sharing ------------------------------------------------------------

    def share(self, owner_id: str, mindmap_id: str, data: ShareCreate) -> ShareResponse:
        """Grant (or re-grant with a new edit flag) access to another user.

        Raises:
            UserNotFoundError: No account with this email.
            SelfShareError: The email belongs to the owner.
        """
        mindmap = self._get_owned_or_raise(mindmap_id, owner_id)

        grantee = self.user_repo.get_by_email(data.email)
        if grantee is None:
            raise UserNotFoundError(data.email)
        if grantee.id == owner_id:
            raise SelfShareError(mindmap_id)

        share = self.share_repo.upsert(mindmap_id, grantee.id, data.can_edit)
        self._sync_visibility(mindmap)
        commit_or_raise(self.db)
        self.snapshots.invalidate(mindmap_id)

        response = ShareResponse.model_validate(share)
        activity_service.record(
            self.db, "SHARE_MINDMAP", ENTITY, mindmap_id,
            user_id=owner_id,
            metadata={"sharedWith": grantee.email, "canEdit": data.can_edit},
        )
        return response

    def remove_share(self, owner_id: str, mindmap_id: str, grantee_user_id: str) -> None:
        mindmap = self._get_owned_or_raise(mindmap_id, owner_id)

        share = self.share_repo.get(mindmap_id, grantee_user_id)
        if share is None:
            raise ShareNotFoundError(mindmap_id, grantee_user_id)

        self.share_repo.delete(share)
        self._sync_visibility(mindmap)
        commit_or_raise(self.db)
        self.snapshots.invalidate(mindmap_id)

        activity_service.record(
            self.db, "REMOVE_SHARE", ENTITY, mindmap_id,
            user_id=owner_id, metadata={"userId": grantee_user_id},
        )

    def generate_share_link(self, owner_id: str, mindmap_id: str) -> ShareLinkResponse:
        """Return the mindmap's share token, minting it on first call.

        The token is written with a conditional UPDATE (only while NULL), so
        concurrent first calls converge on whichever token landed first.
        """
        mindmap = self._get_owned_or_raise(mindmap_id, owner_id)
        if mindmap.share_token:
            return ShareLinkResponse(share_token=mindmap.share_token)

        minted = 0
        for attempt in range(1, SHARE_TOKEN_ATTEMPTS + 1):
            token = secrets.token_hex(SHARE_TOKEN_BYTES)
            try:
                minted = self.mindmap_repo.set_share_token_if_absent(mindmap_id, token)
                self.db.commit()
                break
            except sqlalchemy.exc.IntegrityError as e:
                self.db.rollback()
                logger.warning(f"Share token collision for mindmap {mindmap_id} (attempt {attempt})")
                if attempt == SHARE_TOKEN_ATTEMPTS:
                    raise StorageError("Failed to generate a unique share token", original_error=e) from e
            except sqlalchemy.exc.SQLAlchemyError as e:
                self.db.rollback()
                raise StorageError("Failed to persist share token", original_error=e) from e

        self.db.refresh(mindmap)
        self.snapshots.invalidate(mindmap_id)

        if minted:
            activity_service.record(self.db, "GENERATE_SHARE_LINK", ENTITY, mindmap_id, user_id=owner_id)
        return ShareLinkResponse(share_token=mindmap.share_token)

    def get_by_share_token(self, token: str) -> SharedMindmapResponse:
        """Anonymous read-only view. Token possession is the only check."""
        mindmap = self.mindmap_repo.get_by_share_token(token) if token else None
        if mindmap is None:
            raise MindmapNotFoundError("", message="Shared mindmap not found")

        return SharedMindmapResponse(
            title=mindmap.title,
            description=mindmap.description,
            data=mindmap.data or {},
            thumbnail=mindmap.thumbnail,
            created_at=mindmap.created_at,
            updated_at=mindmap.updated_at,
            owner_name=mindmap.owner.display_name,
        )

    def duplicate(self, requester_id: str, mindmap_id: str) -> MindmapResponse:
        """Copy any mindmap the requester can read into a new private one they own."""
        source = self.find_one(requester_id, mindmap_id)
        self._check_quota(requester_id)

        clone = self.mindmap_repo.create(
            owner_id=requester_id,
            title=_copy_title(source.title),
            description=source.description,
            data=copy.deepcopy(source.data),
            visibility=Visibility.PRIVATE,
            thumbnail=source.thumbnail,
        )
        commit_or_raise(self.db)

        response = MindmapResponse.model_validate(clone)
        activity_service.record(
            self.db, "DUPLICATE_MINDMAP", ENTITY, clone.id,
            user_id=requester_id, metadata={"originalId": mindmap_id},
        )
        return response

    # --- Listings -------------------------------------------------------------

    def find_all(self, owner_id: str, query: MindmapQuery) -> Page[MindmapListItem]:
        rows, total = self.mindmap_repo.list_owned(owner_id, query)
        return Page[MindmapListItem](
            data=[MindmapListItem.model_validate(m) for m in rows],
            pagination=PaginationMeta.build(query, total),
        )

    def get_public_mindmaps(self, query: PublicQuery) -> Page[PublicMindmapItem]:
        rows, total = self.mindmap_repo.list_public(query)
        items = [
            PublicMindmapItem(
                id=m.id,
                title=m.title,
                description=m.description,
                thumbnail=m.thumbnail,
                updated_at=m.updated_at,
                owner=OwnerSummary.model_validate(m.owner),
            )
            for m in rows
        ]
        return Page[PublicMindmapItem](data=items, pagination=PaginationMeta.build(query, total))

    def get_shared_with_me(self, user_id: str, query: SharedWithMeQuery) -> Page[SharedWithMeItem]:
        shares, total = self.share_repo.list_for_user(user_id, query)
        items = [
            SharedWithMeItem(
                id=share.mindmap.id,
                title=share.mindmap.title,
                description=share.mindmap.description,
                thumbnail=share.mindmap.thumbnail,
                updated_at=share.mindmap.updated_at,
                can_edit=share.can_edit,
                owner=UserSummary.model_validate(share.mindmap.owner),
            )
            for share in shares
        ]
        return Page[SharedWithMeItem](data=items, pagination=PaginationMeta.build(query, total))

    # --- Moderation and maintenance --------------------------------------------

    def admin_list(self, query: AdminMindmapQuery) -> Page[AdminMindmapItem]:
        rows, total = self.mindmap_repo.list_all(query)
        return Page[AdminMindmapItem](
            data=[AdminMindmapItem.model_validate(m) for m in rows],
            pagination=PaginationMeta.build(query, total),
        )

    def admin_get(self, mindmap_id: str) -> MindmapDetailResponse:
        mindmap = self.mindmap_repo.get_with_access_data(mindmap_id)
        if mindmap is None:
            raise MindmapNotFoundError(mindmap_id)
        return MindmapDetailResponse.model_validate(mindmap)

    def admin_update(self, admin_id: str, mindmap_id: str, patch: AdminMindmapUpdate) -> MindmapResponse:
        """Moderation edit. PRIVATE/SHARED requests are reconciled with the grant count."""
        mindmap = self.mindmap_repo.get_by_id(mindmap_id)

        changes = patch.model_dump(exclude_unset=True)
        if "visibility" in changes:
            requested = Visibility(changes["visibility"])
            grant_count = self.share_repo.count_for_mindmap(mindmap_id)
            if requested == Visibility.PUBLIC and grant_count > 0:
                raise ValidationError(
                    "Remove all shares before making a shared mindmap PUBLIC",
                    field="visibility",
                )
            if requested != Visibility.PUBLIC:
                requested = derive_visibility(requested, grant_count)
            changes["visibility"] = requested.value

        for field, value in changes.items():
            setattr(mindmap, field, value)
        commit_or_raise(self.db)
        self.snapshots.invalidate(mindmap_id)

        response = MindmapResponse.model_validate(mindmap)
        activity_service.record(
            self.db, "ADMIN_UPDATE_MINDMAP", ENTITY, mindmap_id,
            user_id=admin_id, metadata={"fields": sorted(changes)},
        )
        return response

    def admin_delete(self, admin_id: str, mindmap_id: str) -> None:
        mindmap = self.mindmap_repo.get_by_id(mindmap_id)
        owner_id = mindmap.user_id

        self.db.delete(mindmap)
        commit_or_raise(self.db)
        self.snapshots.invalidate(mindmap_id)

        activity_service.record(
            self.db, "ADMIN_DELETE_MINDMAP", ENTITY, mindmap_id,
            user_id=admin_id, metadata={"ownerId": owner_id},
        )

    def resync_visibility(self, mindmap_ids: Iterable[str]) -> List[str]:
        """Re-derive visibility for mindmaps whose grants changed out of band.

        Used after a grantee account is deleted. Returns the ids that changed.
        """
        changed: List[str] = []
        for mindmap in self.mindmap_repo.get_many(list(mindmap_ids)):
            before = mindmap.visibility
            if self._sync_visibility(mindmap).value != before:
                changed.append(mindmap.id)
        if changed:
            commit_or_raise(self.db)
        return changed

    def invalidate(self, *mindmap_ids: str) -> None:
        self.snapshots.invalidate(*mindmap_ids)
