"""User repository."""

import uuid
from typing import List, Optional, Tuple

from sqlalchemy import func, or_

from ..models import Mindmap, User
from ..exceptions import UserNotFoundError
from ..schemas.user import AdminUserQuery
from .base import BaseRepository, like_pattern, paginate


class UserRepository(BaseRepository[User]):
    model_class = User
    not_found_error = UserNotFoundError

    def get_by_email(self, email: str) -> Optional[User]:
        """Case-insensitive lookup (emails are stored lower-cased)."""
        return self.db.query(User).filter(User.email == email.strip().lower()).first()

    def get_by_verify_token(self, token: str) -> Optional[User]:
        if not token:
            return None
        return self.db.query(User).filter(User.verify_token == token).first()

    def create(
        self,
        email: str,
        password_hash: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        role: str = "USER",
        is_active: bool = True,
        is_verified: bool = False,
    ) -> User:
        user = User(
            id=str(uuid.uuid4()),
            email=email.strip().lower(),
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            role=role,
            is_active=is_active,
            is_verified=is_verified,
        )
        self.db.add(user)
        self.db.flush()
        return user

    def count_all(self, active_only: bool = False) -> int:
        query = self.db.query(User)
        if active_only:
            query = query.filter(User.is_active.is_(True))
        return query.count()

    def count_admins(self) -> int:
        return self.db.query(User).filter(User.role == "ADMIN").count()

    def recent(self, limit: int = 5) -> List[User]:
        return self.db.query(User).order_by(User.created_at.desc()).limit(limit).all()

    def mindmap_counts(self, user_ids: List[str]) -> dict[str, int]:
        if not user_ids:
            return {}
        rows = (
            self.db.query(Mindmap.user_id, func.count(Mindmap.id))
            .filter(Mindmap.user_id.in_(user_ids))
            .group_by(Mindmap.user_id)
            .all()
        )
        return {user_id: count for user_id, count in rows}

    def list_filtered(self, params: AdminUserQuery) -> Tuple[List[User], int]:
        query = self.db.query(User)
        if params.search:
            pattern = like_pattern(params.search)
            query = query.filter(
                or_(
                    User.email.ilike(pattern, escape="\\"),
                    User.first_name.ilike(pattern, escape="\\"),
                    User.last_name.ilike(pattern, escape="\\"),
                )
            )
        if params.role is not None:
            query = query.filter(User.role == params.role.value)
        if params.is_active is not None:
            query = query.filter(User.is_active.is_(params.is_active))
        return paginate(query.order_by(User.created_at.desc(), User.id), params)
