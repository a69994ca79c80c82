"""Unit tests for MindmapService: the deep module owning the mindmap lifecycle.

Runs the service directly against the SQLite test database and an in-memory
cache, bypassing the HTTP stack.
"""

import re
from unittest.mock import MagicMock

import pytest
import redis
import sqlalchemy.exc

from mindmap_pro.core.cache import RedisCache
from mindmap_pro.exceptions import (
    ForbiddenError,
    MindmapNotFoundError,
    QuotaExceededError,
    SelfShareError,
    ShareNotFoundError,
    StorageError,
    UserNotFoundError,
    ValidationError,
)
from mindmap_pro.models import ActivityLog, Mindmap, MindmapShare, Visibility
from mindmap_pro.repositories import MindmapRepository
from mindmap_pro.schemas.mindmap import (
    MindmapCreate,
    MindmapDetailResponse,
    MindmapQuery,
    MindmapUpdate,
    PublicQuery,
    ShareCreate,
    SharedWithMeQuery,
)
from mindmap_pro.services import user_service
from mindmap_pro.services.mindmap_cache import cache_key
from mindmap_pro.services.mindmap_service import SHARE_TOKEN_ATTEMPTS, MindmapService
from mindmap_pro.services.settings_service import SettingsProvider

GRAPH = {
    "nodes": [{"id": "root", "label": "Idea", "children": ["a"]}, {"id": "a", "label": "Child"}],
    "edges": [{"from": "root", "to": "a"}],
}


@pytest.fixture()
def service(db, cache):
    return MindmapService(db, cache)


def _create(service, owner, title="Plan", **fields):
    return service.create(owner.id, MindmapCreate(title=title, **fields))


def _visibility(db, mindmap_id) -> str:
    db.expire_all()
    return db.get(Mindmap, mindmap_id).visibility


def _actions(db, action):
    return db.query(ActivityLog).filter(ActivityLog.action == action).all()


class TestCreate:

    def test_defaults(self, service, owner, db):
        created = _create(service, owner)
        assert created.visibility == Visibility.PRIVATE
        assert created.data == {}
        assert created.user_id == owner.id
        assert created.is_favorite is False and created.is_archived is False
        assert created.share_token is None
        assert len(_actions(db, "CREATE_MINDMAP")) == 1

    def test_keeps_body_and_public_visibility(self, service, owner):
        created = _create(service, owner, data=GRAPH, visibility=Visibility.PUBLIC)
        assert created.data == GRAPH
        assert created.visibility == Visibility.PUBLIC

    def test_shared_on_create_rejected(self, service, owner):
        with pytest.raises(ValidationError):
            _create(service, owner, visibility=Visibility.SHARED)

    def test_does_not_touch_cache(self, service, owner, cache):
        _create(service, owner)
        assert not cache.keys("mindmap:*")

    def test_quota_from_runtime_settings(self, db, cache, owner):
        SettingsProvider(db, cache).update({
            "general_settings": {"allowRegistration": True, "maxMindmapsPerUser": 2},
        })
        service = MindmapService(db, cache)
        _create(service, owner, "one")
        _create(service, owner, "two")
        with pytest.raises(QuotaExceededError):
            _create(service, owner, "three")


class TestFindOne:

    def test_owner_reads_full_record(self, service, owner):
        created = _create(service, owner, data=GRAPH)
        detail = service.find_one(owner.id, created.id)
        assert detail.data == GRAPH
        assert detail.owner.email == "owner@example.com"

    def test_missing_is_not_found(self, service, owner):
        with pytest.raises(MindmapNotFoundError):
            service.find_one(owner.id, "does-not-exist")

    def test_private_is_forbidden_for_strangers(self, service, owner, stranger, cache):
        created = _create(service, owner, data=GRAPH)
        with pytest.raises(ForbiddenError):
            service.find_one(stranger.id, created.id)
        # A denied read never populates the cache.
        assert cache.get(cache_key(created.id)) is None

    def test_hidden_forbidden_reads_as_not_found(self, db, cache, owner, stranger):
        service = MindmapService(db, cache, hide_forbidden=True)
        created = _create(service, owner)
        with pytest.raises(MindmapNotFoundError):
            service.find_one(stranger.id, created.id)
        with pytest.raises(MindmapNotFoundError):
            service.duplicate(stranger.id, created.id)
        with pytest.raises(MindmapNotFoundError):
            service.update(stranger.id, created.id, MindmapUpdate(title="x"))

    def test_hidden_forbidden_keeps_403_for_readers(self, db, cache, owner, friend):
        service = MindmapService(db, cache, hide_forbidden=True)
        created = _create(service, owner)
        service.share(owner.id, created.id, ShareCreate(email=friend.email))
        with pytest.raises(ForbiddenError):
            service.update(friend.id, created.id, MindmapUpdate(title="x"))

    def test_public_is_readable_by_anyone(self, service, owner, stranger):
        created = _create(service, owner, visibility=Visibility.PUBLIC)
        assert service.find_one(stranger.id, created.id).id == created.id

    def test_populates_cache_with_configured_ttl(self, service, owner, cache):
        created = _create(service, owner)
        service.find_one(owner.id, created.id)
        raw = cache.get(cache_key(created.id))
        snapshot = MindmapDetailResponse.model_validate_json(raw)
        assert snapshot.user_id == owner.id
        assert snapshot.visibility == Visibility.PRIVATE
        assert cache.ttls[cache_key(created.id)] == 300

    def test_owner_served_from_cache(self, service, owner, db):
        created = _create(service, owner)
        service.find_one(owner.id, created.id)

        # Change the row behind the service's back: the snapshot still answers.
        db.query(Mindmap).filter(Mindmap.id == created.id).update({"title": "Changed"})
        db.commit()
        assert service.find_one(owner.id, created.id).title == "Plan"

    def test_non_owner_gets_no_owner_only_fields(self, service, owner, friend):
        created = _create(service, owner)
        service.generate_share_link(owner.id, created.id)
        service.share(owner.id, created.id, ShareCreate(email=friend.email))

        detail = service.find_one(friend.id, created.id)
        assert detail.share_token is None
        assert detail.shares == []

        owner_view = service.find_one(owner.id, created.id)
        assert owner_view.share_token is not None
        assert [s.user_id for s in owner_view.shares] == [friend.id]

    def test_stale_snapshot_never_grants_share_access(self, service, owner, friend, cache, db):
        created = _create(service, owner)
        service.share(owner.id, created.id, ShareCreate(email=friend.email))
        service.find_one(friend.id, created.id)
        assert cache.get(cache_key(created.id)) is not None

        # Revoke directly in the store, leaving the SHARED snapshot in place.
        db.query(MindmapShare).filter(MindmapShare.mindmap_id == created.id).delete()
        db.commit()

        with pytest.raises(ForbiddenError):
            service.find_one(friend.id, created.id)

    def test_cache_disabled_by_setting(self, db, cache, owner):
        SettingsProvider(db, cache).update({"cache_settings": {"enabled": False, "ttl": 300}})
        service = MindmapService(db, cache)
        created = _create(service, owner)
        service.find_one(owner.id, created.id)
        assert cache.get(cache_key(created.id)) is None

    def test_ttl_from_runtime_settings(self, db, cache, owner):
        SettingsProvider(db, cache).update({"cache_settings": {"enabled": True, "ttl": 42}})
        service = MindmapService(db, cache)
        created = _create(service, owner)
        service.find_one(owner.id, created.id)
        assert cache.ttls[cache_key(created.id)] == 42


class TestUpdate:

    def test_applies_only_present_fields(self, service, owner):
        created = _create(service, owner, description="keep me", data=GRAPH)
        updated = service.update(owner.id, created.id, MindmapUpdate(title="Renamed"))
        assert updated.title == "Renamed"
        assert updated.description == "keep me"
        assert updated.data == GRAPH

    def test_read_after_update_is_fresh(self, service, owner):
        created = _create(service, owner)
        service.find_one(owner.id, created.id)
        service.update(owner.id, created.id, MindmapUpdate(title="After"))
        assert service.find_one(owner.id, created.id).title == "After"

    def test_public_reader_sees_update(self, service, owner, stranger):
        created = _create(service, owner, visibility=Visibility.PUBLIC)
        service.find_one(stranger.id, created.id)
        service.update(owner.id, created.id, MindmapUpdate(data={"nodes": [], "edges": []}))
        assert service.find_one(stranger.id, created.id).data == {"nodes": [], "edges": []}

    def test_non_owner_forbidden(self, service, owner, friend):
        created = _create(service, owner)
        service.share(owner.id, created.id, ShareCreate(email=friend.email, can_edit=True))
        with pytest.raises(ForbiddenError):
            service.update(friend.id, created.id, MindmapUpdate(title="Hijack"))

    def test_missing_not_found(self, service, owner):
        with pytest.raises(MindmapNotFoundError):
            service.update(owner.id, "nope", MindmapUpdate(title="x"))

    def test_make_public_and_back(self, service, owner):
        created = _create(service, owner)
        assert service.update(owner.id, created.id, MindmapUpdate(visibility=Visibility.PUBLIC)).visibility == Visibility.PUBLIC
        assert service.update(owner.id, created.id, MindmapUpdate(visibility=Visibility.PRIVATE)).visibility == Visibility.PRIVATE

    def test_shared_requires_a_grant(self, service, owner):
        created = _create(service, owner)
        with pytest.raises(ValidationError):
            service.update(owner.id, created.id, MindmapUpdate(visibility=Visibility.SHARED))

    def test_cannot_leave_shared_while_grants_exist(self, service, owner, friend):
        created = _create(service, owner)
        service.share(owner.id, created.id, ShareCreate(email=friend.email))
        with pytest.raises(ValidationError):
            service.update(owner.id, created.id, MindmapUpdate(visibility=Visibility.PUBLIC))

    def test_logs_changed_fields(self, service, owner, db):
        created = _create(service, owner)
        service.update(owner.id, created.id, MindmapUpdate(title="x", is_favorite=True))
        entry = _actions(db, "UPDATE_MINDMAP")[0]
        assert entry.details == {"fields": ["is_favorite", "title"]}


class TestDelete:

    def test_removes_row_grants_and_snapshot(self, service, owner, friend, cache, db):
        created = _create(service, owner)
        service.share(owner.id, created.id, ShareCreate(email=friend.email))
        service.find_one(owner.id, created.id)

        service.delete(owner.id, created.id)

        assert db.get(Mindmap, created.id) is None
        assert db.query(MindmapShare).count() == 0
        assert cache.get(cache_key(created.id)) is None
        assert len(_actions(db, "DELETE_MINDMAP")) == 1

    def test_non_owner_forbidden(self, service, owner, stranger):
        created = _create(service, owner, visibility=Visibility.PUBLIC)
        with pytest.raises(ForbiddenError):
            service.delete(stranger.id, created.id)


class TestToggles:

    def test_favorite_flips(self, service, owner):
        created = _create(service, owner)
        assert service.toggle_favorite(owner.id, created.id).is_favorite is True
        assert service.toggle_favorite(owner.id, created.id).is_favorite is False

    def test_archive_flips_and_invalidates(self, service, owner, cache):
        created = _create(service, owner)
        service.find_one(owner.id, created.id)
        assert service.toggle_archive(owner.id, created.id).is_archived is True
        assert cache.get(cache_key(created.id)) is None
        assert service.find_one(owner.id, created.id).is_archived is True

    def test_toggle_leaves_other_fields_alone(self, service, owner):
        created = _create(service, owner, data=GRAPH, visibility=Visibility.PUBLIC)
        toggled = service.toggle_favorite(owner.id, created.id)
        assert toggled.data == GRAPH
        assert toggled.visibility == Visibility.PUBLIC
        assert toggled.is_archived is False

    def test_non_owner_forbidden(self, service, owner, friend):
        created = _create(service, owner)
        service.share(owner.id, created.id, ShareCreate(email=friend.email, can_edit=True))
        with pytest.raises(ForbiddenError):
            service.toggle_favorite(friend.id, created.id)


class TestSharing:

    def test_share_sets_shared(self, service, owner, friend, db):
        created = _create(service, owner)
        share = service.share(owner.id, created.id, ShareCreate(email=friend.email))
        assert share.user_id == friend.id
        assert share.can_edit is False
        assert _visibility(db, created.id) == "SHARED"

    def test_share_overrides_public(self, service, owner, friend, db):
        created = _create(service, owner, visibility=Visibility.PUBLIC)
        service.share(owner.id, created.id, ShareCreate(email=friend.email))
        assert _visibility(db, created.id) == "SHARED"

    def test_email_lookup_is_case_insensitive(self, service, owner, friend):
        created = _create(service, owner)
        share = service.share(owner.id, created.id, ShareCreate(email="FRIEND@Example.com"))
        assert share.user_id == friend.id

    def test_unknown_email(self, service, owner):
        created = _create(service, owner)
        with pytest.raises(UserNotFoundError):
            service.share(owner.id, created.id, ShareCreate(email="ghost@example.com"))

    def test_self_share_rejected(self, service, owner, db):
        created = _create(service, owner)
        with pytest.raises(SelfShareError):
            service.share(owner.id, created.id, ShareCreate(email=owner.email))
        assert _visibility(db, created.id) == "PRIVATE"

    def test_reshare_updates_edit_flag(self, service, owner, friend, db):
        created = _create(service, owner)
        service.share(owner.id, created.id, ShareCreate(email=friend.email))
        share = service.share(owner.id, created.id, ShareCreate(email=friend.email, can_edit=True))
        assert share.can_edit is True
        assert db.query(MindmapShare).count() == 1

    def test_share_logs_grantee(self, service, owner, friend, db):
        created = _create(service, owner)
        service.share(owner.id, created.id, ShareCreate(email=friend.email))
        entry = _actions(db, "SHARE_MINDMAP")[0]
        assert entry.details["sharedWith"] == friend.email
        assert entry.entity_id == created.id

    def test_only_owner_can_share(self, service, owner, friend, stranger):
        created = _create(service, owner)
        service.share(owner.id, created.id, ShareCreate(email=friend.email, can_edit=True))
        with pytest.raises(ForbiddenError):
            service.share(friend.id, created.id, ShareCreate(email=stranger.email))

    def test_remove_last_share_restores_private(self, service, owner, friend, db):
        created = _create(service, owner)
        service.share(owner.id, created.id, ShareCreate(email=friend.email))
        service.remove_share(owner.id, created.id, friend.id)
        assert _visibility(db, created.id) == "PRIVATE"

    def test_remove_one_of_two_stays_shared(self, service, owner, friend, stranger, db):
        created = _create(service, owner)
        service.share(owner.id, created.id, ShareCreate(email=friend.email))
        service.share(owner.id, created.id, ShareCreate(email=stranger.email))
        service.remove_share(owner.id, created.id, friend.id)
        assert _visibility(db, created.id) == "SHARED"

    def test_remove_missing_share(self, service, owner, friend):
        created = _create(service, owner)
        with pytest.raises(ShareNotFoundError):
            service.remove_share(owner.id, created.id, friend.id)

    def test_share_and_remove_invalidate(self, service, owner, friend, cache):
        created = _create(service, owner)
        service.find_one(owner.id, created.id)
        service.share(owner.id, created.id, ShareCreate(email=friend.email))
        assert cache.get(cache_key(created.id)) is None

        service.find_one(owner.id, created.id)
        service.remove_share(owner.id, created.id, friend.id)
        assert cache.get(cache_key(created.id)) is None


class TestShareLink:

    def test_token_is_128_bit_hex(self, service, owner):
        created = _create(service, owner)
        token = service.generate_share_link(owner.id, created.id).share_token
        assert re.fullmatch(r"[0-9a-f]{32}", token)

    def test_idempotent(self, service, owner, db):
        created = _create(service, owner)
        first = service.generate_share_link(owner.id, created.id).share_token
        second = service.generate_share_link(owner.id, created.id).share_token
        assert first == second
        assert len(_actions(db, "GENERATE_SHARE_LINK")) == 1

    def test_visibility_unchanged(self, service, owner, db):
        created = _create(service, owner)
        service.generate_share_link(owner.id, created.id)
        assert _visibility(db, created.id) == "PRIVATE"

    def test_conditional_write_keeps_first_token(self, db, owner, service):
        created = _create(service, owner)
        repo = MindmapRepository(db)
        assert repo.set_share_token_if_absent(created.id, "a" * 32) == 1
        assert repo.set_share_token_if_absent(created.id, "b" * 32) == 0
        db.commit()
        assert service.generate_share_link(owner.id, created.id).share_token == "a" * 32

    def test_only_owner(self, service, owner, friend):
        created = _create(service, owner)
        service.share(owner.id, created.id, ShareCreate(email=friend.email, can_edit=True))
        with pytest.raises(ForbiddenError):
            service.generate_share_link(friend.id, created.id)

    def test_token_read_projection(self, service, owner):
        created = _create(service, owner, data=GRAPH, description="desc")
        token = service.generate_share_link(owner.id, created.id).share_token

        shared = service.get_by_share_token(token)
        body = shared.model_dump()
        assert body["title"] == "Plan"
        assert body["data"] == GRAPH
        assert body["owner_name"] == "Olive Owner"
        for hidden in ("id", "visibility", "shares", "share_token", "user_id", "owner"):
            assert hidden not in body
        assert "owner@example.com" not in shared.model_dump_json()

    def test_token_works_for_private_mindmap(self, service, owner):
        created = _create(service, owner)
        token = service.generate_share_link(owner.id, created.id).share_token
        assert service.get_by_share_token(token).title == "Plan"

    def test_unknown_token(self, service):
        with pytest.raises(MindmapNotFoundError):
            service.get_by_share_token("0" * 32)

    def test_owner_name_falls_back_to_email_local_part(self, service, stranger):
        created = _create(service, stranger)
        token = service.generate_share_link(stranger.id, created.id).share_token
        assert service.get_by_share_token(token).owner_name == "stranger"


class TestDuplicate:

    def test_copy_of_own_mindmap(self, service, owner, db):
        created = _create(service, owner, data=GRAPH, visibility=Visibility.PUBLIC)
        clone = service.duplicate(owner.id, created.id)

        assert clone.id != created.id
        assert clone.title == "Plan (Copy)"
        assert clone.visibility == Visibility.PRIVATE
        assert clone.data == GRAPH
        assert clone.user_id == owner.id
        assert _actions(db, "DUPLICATE_MINDMAP")[0].details == {"originalId": created.id}

    def test_body_is_deep_copied(self, service, owner):
        created = _create(service, owner, data=GRAPH)
        clone = service.duplicate(owner.id, created.id)
        service.update(owner.id, clone.id, MindmapUpdate(data={"nodes": [], "edges": []}))
        assert service.find_one(owner.id, created.id).data == GRAPH

    def test_viewer_grantee_can_duplicate(self, service, owner, friend):
        created = _create(service, owner, data=GRAPH)
        service.share(owner.id, created.id, ShareCreate(email=friend.email))
        clone = service.duplicate(friend.id, created.id)
        assert clone.user_id == friend.id
        assert clone.visibility == Visibility.PRIVATE

    def test_public_can_be_duplicated_by_anyone(self, service, owner, stranger):
        created = _create(service, owner, visibility=Visibility.PUBLIC)
        assert service.duplicate(stranger.id, created.id).user_id == stranger.id

    def test_private_cannot_be_duplicated_by_stranger(self, service, owner, stranger):
        created = _create(service, owner)
        with pytest.raises(ForbiddenError):
            service.duplicate(stranger.id, created.id)

    def test_long_title_stays_within_limit(self, service, owner):
        created = _create(service, owner, title="x" * 255)
        clone = service.duplicate(owner.id, created.id)
        assert len(clone.title) == 255
        assert clone.title.endswith(" (Copy)")


class TestListings:

    def test_find_all_paginates(self, service, owner):
        for i in range(5):
            _create(service, owner, f"Map {i}")
        page = service.find_all(owner.id, MindmapQuery(page=2, limit=2))
        assert len(page.data) == 2
        assert page.pagination.model_dump() == {"page": 2, "limit": 2, "total": 5, "total_pages": 3}

    def test_find_all_only_own(self, service, owner, stranger):
        _create(service, owner, "mine")
        _create(service, stranger, "theirs")
        page = service.find_all(owner.id, MindmapQuery())
        assert [m.title for m in page.data] == ["mine"]

    def test_find_all_excludes_archived_by_default(self, service, owner):
        kept = _create(service, owner, "kept")
        archived = _create(service, owner, "archived")
        service.toggle_archive(owner.id, archived.id)

        assert [m.id for m in service.find_all(owner.id, MindmapQuery()).data] == [kept.id]
        assert [m.id for m in service.find_all(owner.id, MindmapQuery(is_archived=True)).data] == [archived.id]

    def test_find_all_search_and_filters(self, service, owner):
        _create(service, owner, "Roadmap 2025")
        _create(service, owner, "Groceries", description="weekly ROADMAP of food")
        fav = _create(service, owner, "Other")
        service.toggle_favorite(owner.id, fav.id)

        found = service.find_all(owner.id, MindmapQuery(search="roadmap", sort="title", order="asc"))
        assert [m.title for m in found.data] == ["Groceries", "Roadmap 2025"]

        favorites = service.find_all(owner.id, MindmapQuery(is_favorite=True))
        assert [m.id for m in favorites.data] == [fav.id]

    def test_search_treats_wildcards_literally(self, service, owner):
        _create(service, owner, "100% done")
        _create(service, owner, "1000 ideas")
        found = service.find_all(owner.id, MindmapQuery(search="100%"))
        assert [m.title for m in found.data] == ["100% done"]

    def test_empty_listing(self, service, owner):
        page = service.find_all(owner.id, MindmapQuery())
        assert page.data == []
        assert page.pagination.total == 0
        assert page.pagination.total_pages == 0

    def test_public_listing(self, service, owner, stranger):
        public = _create(service, owner, "Open", visibility=Visibility.PUBLIC)
        _create(service, owner, "Closed")
        hidden = _create(service, owner, "Archived public", visibility=Visibility.PUBLIC)
        service.toggle_archive(owner.id, hidden.id)

        page = service.get_public_mindmaps(PublicQuery())
        assert [m.id for m in page.data] == [public.id]
        assert page.data[0].owner.first_name == "Olive"
        assert "email" not in page.data[0].owner.model_dump()

    def test_public_listing_search(self, service, owner):
        _create(service, owner, "Physics notes", visibility=Visibility.PUBLIC)
        _create(service, owner, "Chemistry", visibility=Visibility.PUBLIC)
        page = service.get_public_mindmaps(PublicQuery(search="PHYS"))
        assert [m.title for m in page.data] == ["Physics notes"]

    def test_shared_with_me(self, service, owner, friend, stranger):
        first = _create(service, owner, "first")
        _create(service, owner, "not shared")
        service.share(owner.id, first.id, ShareCreate(email=friend.email, can_edit=True))

        page = service.get_shared_with_me(friend.id, SharedWithMeQuery())
        assert [m.id for m in page.data] == [first.id]
        assert page.data[0].can_edit is True
        assert page.data[0].owner.email == owner.email
        assert service.get_shared_with_me(stranger.id, SharedWithMeQuery()).data == []

    def test_shared_with_me_excludes_archived(self, service, owner, friend):
        created = _create(service, owner)
        service.share(owner.id, created.id, ShareCreate(email=friend.email))
        service.toggle_archive(owner.id, created.id)
        assert service.get_shared_with_me(friend.id, SharedWithMeQuery()).data == []
        assert len(service.get_shared_with_me(friend.id, SharedWithMeQuery(is_archived=True)).data) == 1


class TestStorageFailures:

    def test_failed_commit_leaves_nothing_behind(self, service, owner, friend, db, monkeypatch):
        created = _create(service, owner)
        failing_commit = MagicMock(
            side_effect=sqlalchemy.exc.OperationalError("COMMIT", {}, Exception("disk I/O error"))
        )
        with monkeypatch.context() as m:
            m.setattr(db, "commit", failing_commit)
            with pytest.raises(StorageError):
                service.share(owner.id, created.id, ShareCreate(email=friend.email))

        assert db.query(MindmapShare).filter_by(mindmap_id=created.id).count() == 0
        assert _visibility(db, created.id) == "PRIVATE"
        assert _actions(db, "SHARE_MINDMAP") == []

    def test_activity_log_failure_does_not_fail_the_operation(self, service, owner, db, monkeypatch):
        """The mutation is committed before the log entry is attempted."""
        real_add = db.add

        def add(instance, *args, **kwargs):
            if isinstance(instance, ActivityLog):
                raise sqlalchemy.exc.OperationalError("INSERT", {}, Exception("table locked"))
            return real_add(instance, *args, **kwargs)

        with monkeypatch.context() as m:
            m.setattr(db, "add", add)
            created = _create(service, owner)
            updated = service.update(owner.id, created.id, MindmapUpdate(title="Renamed"))

        assert updated.title == "Renamed"
        db.expire_all()
        assert db.get(Mindmap, created.id).title == "Renamed"
        assert _actions(db, "CREATE_MINDMAP") == []
        assert _actions(db, "UPDATE_MINDMAP") == []

    def test_share_token_collisions_exhaust_retries(self, service, owner, db, monkeypatch):
        created = _create(service, owner)
        writer = MagicMock(
            side_effect=sqlalchemy.exc.IntegrityError("UPDATE mindmaps", {}, Exception("duplicate key"))
        )
        monkeypatch.setattr(service.mindmap_repo, "set_share_token_if_absent", writer)

        with pytest.raises(StorageError, match="unique share token"):
            service.generate_share_link(owner.id, created.id)
        assert writer.call_count == SHARE_TOKEN_ATTEMPTS

        db.expire_all()
        assert db.get(Mindmap, created.id).share_token is None
        assert _actions(db, "GENERATE_SHARE_LINK") == []


class TestCacheUnavailable:
    """Every operation still succeeds when Redis is down."""

    def test_operations_succeed_without_redis(self, db, owner, friend):
        client = MagicMock()
        for name in ("get", "set", "delete", "scan_iter", "flushdb", "ping"):
            getattr(client, name).side_effect = redis.ConnectionError("down")
        service = MindmapService(db, RedisCache(client))

        created = _create(service, owner, data=GRAPH)
        assert service.find_one(owner.id, created.id).data == GRAPH
        service.update(owner.id, created.id, MindmapUpdate(title="Still works"))
        service.share(owner.id, created.id, ShareCreate(email=friend.email))
        assert service.find_one(friend.id, created.id).title == "Still works"
        service.delete(owner.id, created.id)


class TestEndToEndScenarios:

    def test_share_then_revoke(self, service, owner, friend, db):
        m = _create(service, owner)
        assert _visibility(db, m.id) == "PRIVATE"

        service.share(owner.id, m.id, ShareCreate(email=friend.email, can_edit=False))
        assert _visibility(db, m.id) == "SHARED"

        with pytest.raises(ForbiddenError):
            service.update(friend.id, m.id, MindmapUpdate(title="nope"))

        service.remove_share(owner.id, m.id, friend.id)
        assert _visibility(db, m.id) == "PRIVATE"

        with pytest.raises(ForbiddenError):
            service.find_one(friend.id, m.id)

    def test_deleting_grantee_resyncs_visibility(self, db, cache, service, owner, friend):
        m = _create(service, owner)
        service.share(owner.id, m.id, ShareCreate(email=friend.email))
        service.find_one(owner.id, m.id)

        user_service.delete_user(db, cache, friend.id, friend.id)

        assert _visibility(db, m.id) == "PRIVATE"
        assert cache.get(cache_key(m.id)) is None

    def test_deleting_owner_removes_their_mindmaps(self, db, cache, service, owner, friend):
        m = _create(service, owner)
        service.share(owner.id, m.id, ShareCreate(email=friend.email))
        service.find_one(owner.id, m.id)

        user_service.delete_user(db, cache, owner.id, owner.id)

        db.expire_all()
        assert db.get(Mindmap, m.id) is None
        assert db.query(MindmapShare).count() == 0
        assert cache.get(cache_key(m.id)) is None
