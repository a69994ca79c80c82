"""Authentication module: FastAPI dependencies resolving the caller's identity.

Public interface:
    ``require_auth``: returns AuthContext or raises 401.
    ``require_admin``: returns AuthContext, raises 403 if not admin.

The services trust the AuthContext as already verified.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .config import settings
from .token_factory import TokenPayload, decode_token
from ..database import get_db
from ..exceptions import AuthenticationError, ForbiddenError

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    """Resolved identity: ``(user_id, role)``."""

    user_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"


def require_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    db: Session = Depends(get_db),
) -> AuthContext:
    """Require a valid JWT and return the user's AuthContext."""
    if credentials is None:
        raise AuthenticationError("Missing authentication token")

    payload = decode_token(
        credentials.credentials, settings.jwt_secret_key, settings.jwt_algorithm
    )
    if payload is None:
        raise AuthenticationError("Invalid or expired token")

    return _load_auth_context(payload, db)


def require_admin(
    auth: AuthContext = Depends(require_auth),
) -> AuthContext:
    """Require the authenticated user to be an admin. Raises 403 otherwise."""
    if not auth.is_admin:
        raise ForbiddenError("Admin access required")
    return auth


def _load_auth_context(payload: TokenPayload, db: Session) -> AuthContext:
    """Reload the user so role changes and deactivation apply immediately."""
    from ..models.user import User

    user = db.get(User, payload.sub)
    if user is None:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthenticationError("Account is deactivated")

    return AuthContext(user_id=user.id, role=user.role)
