"""Authentication API endpoints.

Public endpoints:
    POST /api/auth/register      create account, receive tokens (unless verification is required)
    POST /api/auth/login         authenticate and receive tokens
    POST /api/auth/refresh       trade a refresh token for a new pair
    GET  /api/auth/verify-email  confirm an email address with its verify token
Authenticated:
    GET  /api/auth/me            current user
    POST /api/auth/logout        invalidate the refresh token
"""

import logging

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ..core.auth import AuthContext, require_auth
from ..database import get_db
from ..middleware.request_context import client_ip
from ..schemas.common import MessageResponse
from ..schemas.user import LoginRequest, RefreshRequest, RegisterRequest, TokenResponse, UserResponse
from ..services import auth_service, user_service
from ..services.settings_service import SettingsProvider, get_settings_provider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


@router.post("/register", response_model=TokenResponse, status_code=201)
def register(
    body: RegisterRequest,
    request: Request,
    db: Session = Depends(get_db),
    provider: SettingsProvider = Depends(get_settings_provider),
):
    """Create a new account."""
    return auth_service.register_user(db, provider, body, ip_address=client_ip(request))


@router.post("/login", response_model=TokenResponse)
def login(
    body: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    provider: SettingsProvider = Depends(get_settings_provider),
):
    """Authenticate with email and password. Returns an access and a refresh token."""
    return auth_service.authenticate(
        db, provider, body,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


@router.get("/me", response_model=UserResponse)
def get_current_user(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    return user_service.get_profile(db, auth.user_id)


@router.post("/refresh", response_model=TokenResponse)
def refresh(body: RefreshRequest, db: Session = Depends(get_db)):
    return auth_service.refresh_session(db, body)


@router.post("/logout", response_model=MessageResponse)
def logout(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_auth),
):
    auth_service.logout(db, auth.user_id)
    return MessageResponse(message="Logged out successfully")


@router.get("/verify-email", response_model=MessageResponse)
def verify_email(
    token: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    auth_service.verify_email(db, token)
    return MessageResponse(message="Email verified successfully")
