"""Authentication service: registration, login, password hashing, tokens.

A session is an access token plus a refresh token. Only the SHA-256 of the
latest refresh token is stored, so refreshing rotates it and logging out
nulls it. Verification mail delivery is not part of this service; the
verify token is left on the user row for whatever sends it.

All password operations use bcrypt via passlib. Passwords are never stored
or logged in plaintext. Feature flags (registration open, email
verification) are read from the settings provider on every call.
"""

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timezone
from typing import Optional

from passlib.hash import bcrypt
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.token_factory import create_token, decode_token
from ..database import commit_or_raise
from ..exceptions import AuthenticationError, EmailAlreadyRegisteredError, ForbiddenError, ValidationError
from ..models.user import User
from ..repositories import UserRepository
from ..schemas.user import LoginRequest, RefreshRequest, RegisterRequest, TokenResponse, UserResponse
from . import activity_service
from .settings_service import SettingsProvider

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    return bcrypt.using(rounds=settings.bcrypt_rounds).hash(password)


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.verify(password, password_hash)
    except ValueError:
        # Malformed stored hash
        return False


def issue_token(user: User) -> str:
    return create_token(
        subject=user.id,
        role=user.role,
        secret=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        expires_minutes=settings.jwt_expires_minutes,
    )


def _hash_refresh_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def _issue_token_pair(user: User) -> tuple[str, str]:
    """Mint an access/refresh pair and remember the refresh token's hash.

    The caller commits.
    """
    refresh_token = create_token(
        subject=user.id,
        role=user.role,
        secret=settings.jwt_refresh_secret_key,
        algorithm=settings.jwt_algorithm,
        expires_minutes=settings.jwt_refresh_expires_minutes,
        token_id=secrets.token_hex(8),
    )
    user.refresh_token_hash = _hash_refresh_token(refresh_token)
    return issue_token(user), refresh_token


def register_user(
    db: Session,
    provider: SettingsProvider,
    data: RegisterRequest,
    ip_address: Optional[str] = None,
) -> TokenResponse:
    """Create a USER account.

    Accounts are verified immediately unless email verification is required,
    in which case no tokens are returned and a verify token is stored.

    Raises:
        ForbiddenError: Registration is closed.
        EmailAlreadyRegisteredError: The email is taken.
    """
    if not provider.allow_registration():
        raise ForbiddenError("Registration is currently disabled")

    repo = UserRepository(db)
    if repo.get_by_email(data.email) is not None:
        raise EmailAlreadyRegisteredError(data.email)

    require_verification = provider.require_email_verification()
    user = repo.create(
        email=data.email,
        password_hash=hash_password(data.password),
        first_name=data.first_name,
        last_name=data.last_name,
        is_verified=not require_verification,
    )
    if require_verification:
        user.verify_token = secrets.token_urlsafe(32)
        access_token = refresh_token = None
    else:
        access_token, refresh_token = _issue_token_pair(user)
    commit_or_raise(db)
    logger.info("Registered user %s (verified=%s)", user.id, user.is_verified)

    user_response = UserResponse.model_validate(user)
    activity_service.record(db, "REGISTER", "User", user.id, user_id=user.id, ip_address=ip_address)

    if require_verification:
        return TokenResponse(
            user=user_response,
            message="Registration successful. Please verify your email before logging in.",
        )
    return TokenResponse(access_token=access_token, refresh_token=refresh_token, user=user_response)


def authenticate(
    db: Session,
    provider: SettingsProvider,
    data: LoginRequest,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> TokenResponse:
    """Validate credentials, stamp ``last_login`` and start a new session.

    Raises AuthenticationError on unknown email, wrong password, inactive
    account, or an unverified account when verification is required.
    """
    user = UserRepository(db).get_by_email(data.email)
    if user is None or not verify_password(data.password, user.password_hash):
        raise AuthenticationError("Invalid email or password")

    if not user.is_active:
        raise AuthenticationError("Account is deactivated")

    if not user.is_verified and provider.require_email_verification():
        raise AuthenticationError("Email address has not been verified")

    user.last_login = datetime.now(timezone.utc)
    access_token, refresh_token = _issue_token_pair(user)
    commit_or_raise(db)

    response = TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        user=UserResponse.model_validate(user),
    )
    activity_service.record(
        db, "LOGIN", "User", user.id,
        user_id=user.id, ip_address=ip_address, user_agent=user_agent,
    )
    return response


def refresh_session(db: Session, data: RefreshRequest) -> TokenResponse:
    """Exchange a live refresh token for a new pair.

    The presented token must match the stored hash, so each refresh token
    works once and none survive a logout or password change.
    """
    payload = decode_token(data.refresh_token, settings.jwt_refresh_secret_key, settings.jwt_algorithm)
    if payload is None:
        raise AuthenticationError("Invalid or expired refresh token")

    user = UserRepository(db).get_by_id_optional(payload.sub)
    if (
        user is None
        or not user.refresh_token_hash
        or not hmac.compare_digest(user.refresh_token_hash, _hash_refresh_token(data.refresh_token))
    ):
        raise AuthenticationError("Invalid or expired refresh token")
    if not user.is_active:
        raise AuthenticationError("Account is deactivated")

    access_token, refresh_token = _issue_token_pair(user)
    commit_or_raise(db)
    return TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        user=UserResponse.model_validate(user),
    )


def logout(db: Session, user_id: str) -> None:
    """Forget the stored refresh token. Issued access tokens run to expiry."""
    user = UserRepository(db).get_by_id(user_id)
    user.refresh_token_hash = None
    commit_or_raise(db)
    activity_service.record(db, "LOGOUT", "User", user_id, user_id=user_id)


def verify_email(db: Session, token: str) -> None:
    """Mark the account holding *token* as verified and burn the token.

    Raises ValidationError for an unknown or already used token.
    """
    user = UserRepository(db).get_by_verify_token(token)
    if user is None:
        raise ValidationError("Invalid verification token", field="token")

    user.is_verified = True
    user.verify_token = None
    commit_or_raise(db)
    logger.info("Verified email for user %s", user.id)
    activity_service.record(db, "VERIFY_EMAIL", "User", user.id, user_id=user.id)
