"""Current-user account endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.auth import AuthContext, require_auth
from ..core.cache import get_cache
from ..database import get_db
from ..schemas.common import MessageResponse
from ..schemas.user import PasswordChange, ProfileUpdate, UserResponse
from ..services import user_service

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/me", response_model=UserResponse)
def get_profile(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    return user_service.get_profile(db, auth.user_id)


@router.put("/me", response_model=UserResponse)
def update_profile(
    data: ProfileUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    return user_service.update_profile(db, auth.user_id, data)


@router.put("/me/password", response_model=MessageResponse)
def change_password(
    data: PasswordChange,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    user_service.change_password(db, auth.user_id, data)
    return MessageResponse(message="Password changed successfully")


@router.delete("/me", response_model=MessageResponse)
def delete_account(
    db: Session = Depends(get_db),
    cache=Depends(get_cache),
    auth: AuthContext = Depends(require_auth),
):
    """Delete the caller's account, mindmaps and share grants."""
    user_service.delete_user(db, cache, auth.user_id, auth.user_id)
    return MessageResponse(message="Account deleted successfully")
