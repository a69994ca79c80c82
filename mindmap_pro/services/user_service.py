"""User account service: profile, password and account deletion."""

import logging

from sqlalchemy.orm import Session

from ..database import commit_or_raise
from ..exceptions import InvalidPasswordError
from ..repositories import MindmapRepository, ShareRepository, UserRepository
from ..schemas.user import PasswordChange, ProfileUpdate, UserResponse
from . import activity_service
from .auth_service import hash_password, verify_password
from .mindmap_service import MindmapService

logger = logging.getLogger(__name__)


def get_profile(db: Session, user_id: str) -> UserResponse:
    return UserResponse.model_validate(UserRepository(db).get_by_id(user_id))


def update_profile(db: Session, user_id: str, data: ProfileUpdate) -> UserResponse:
    user = UserRepository(db).get_by_id(user_id)
    changes = data.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(user, field, value)
    commit_or_raise(db)

    response = UserResponse.model_validate(user)
    activity_service.record(
        db, "UPDATE_PROFILE", "User", user_id,
        user_id=user_id, metadata={"fields": sorted(changes)},
    )
    return response


def change_password(db: Session, user_id: str, data: PasswordChange) -> None:
    """Replace the password after verifying the current one.

    Clears the stored refresh token. Raises InvalidPasswordError when the
    current password does not match.
    """
    user = UserRepository(db).get_by_id(user_id)
    if not verify_password(data.current_password, user.password_hash):
        raise InvalidPasswordError()

    user.password_hash = hash_password(data.new_password)
    # Sign out other sessions
    user.refresh_token_hash = None
    commit_or_raise(db)
    activity_service.record(db, "CHANGE_PASSWORD", "User", user_id, user_id=user_id)


def delete_user(db: Session, cache, user_id: str, actor_id: str, action: str = "DELETE_ACCOUNT") -> None:
    """Delete a user, their mindmaps and every grant they hold.

    Mindmaps that lose their last grant this way drop back to PRIVATE, and
    every affected snapshot is invalidated after the commit.
    """
    users = UserRepository(db)
    user = users.get_by_id(user_id)
    email = user.email

    owned_ids = MindmapRepository(db).ids_by_owner(user_id)
    granted_ids = ShareRepository(db).mindmap_ids_for_user(user_id)

    db.delete(user)
    commit_or_raise(db)
    logger.info("Deleted user %s (%d mindmaps)", user_id, len(owned_ids))

    mindmaps = MindmapService(db, cache)
    mindmaps.resync_visibility(granted_ids)
    mindmaps.invalidate(*owned_ids, *granted_ids)

    # The actor is gone when users delete themselves.
    activity_service.record(
        db, action, "User", user_id,
        user_id=None if actor_id == user_id else actor_id,
        metadata={"email": email},
    )
