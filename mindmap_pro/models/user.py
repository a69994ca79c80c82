"""User and ActivityLog models.

Users authenticate with email/password and receive JWT access tokens.
ActivityLog records state-changing operations for the admin panel.
"""

from enum import Enum

from sqlalchemy import Column, String, DateTime, Boolean, Integer, Text, ForeignKey, Index, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base


class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class User(Base):
    """User account.

    ``email`` is stored lower-cased so the unique constraint is effectively
    case-insensitive. Deleting a user removes their mindmaps and every share
    grant they hold on other users' mindmaps.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(Text, nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    avatar = Column(Text, nullable=True)
    role = Column(String(20), nullable=False, default=Role.USER.value)
    is_active = Column(Boolean, nullable=False, default=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_login = Column(DateTime(timezone=True), nullable=True)
    # SHA-256 of the one live refresh token; NULL after logout.
    refresh_token_hash = Column(String(64), nullable=True)
    verify_token = Column(String(64), unique=True, nullable=True)

    mindmaps = relationship(
        "Mindmap",
        back_populates="owner",
        cascade="all, delete-orphan",
    )
    received_shares = relationship(
        "MindmapShare",
        back_populates="user",
        cascade="all, delete-orphan",
        foreign_keys="[MindmapShare.user_id]",
    )

    @property
    def display_name(self) -> str:
        """First and last name, or the email's local part when both are empty."""
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or self.email.split("@")[0]

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value


class ActivityLog(Base):
    """Append-only record of state-changing operations.

    Fields:
        action    CREATE_MINDMAP, SHARE_MINDMAP, LOGIN, ADMIN_DELETE_USER, ...
        entity    Mindmap, User, Settings
        entity_id id of the affected entity
        details   JSON metadata (e.g. ``{"originalId": ...}``)
    """

    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("ix_activity_logs_created_at", "created_at"),
        Index("ix_activity_logs_user_id", "user_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    action = Column(String(50), nullable=False)
    entity = Column(String(50), nullable=False)
    entity_id = Column(String(255), nullable=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    details = Column(JSON, nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User")
