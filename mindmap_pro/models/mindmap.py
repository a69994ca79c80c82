"""Mindmap and MindmapShare models."""

from enum import Enum

from sqlalchemy import Column, Index, String, Text, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base


class Visibility(str, Enum):
    """Tri-state access level of a mindmap.

    SHARED is derived: a mindmap is SHARED exactly when it has at least one
    share grant. PUBLIC is only ever set by the owner (or an admin).
    """
    PRIVATE = "PRIVATE"
    PUBLIC = "PUBLIC"
    SHARED = "SHARED"


class Mindmap(Base):
    """A mindmap document owned by exactly one user."""

    __tablename__ = "mindmaps"
    __table_args__ = (
        Index("ix_mindmaps_user_id", "user_id"),
        Index("ix_mindmaps_visibility", "visibility"),
        Index("ix_mindmaps_updated_at", "updated_at"),
    )

    id = Column(String(36), primary_key=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Node/edge graph edited by the front-end. Stored and returned verbatim.
    data = Column(JSON, nullable=False, default=dict)

    thumbnail = Column(Text, nullable=True)
    visibility = Column(String(20), nullable=False, default=Visibility.PRIVATE.value)
    is_favorite = Column(Boolean, nullable=False, default=False)
    is_archived = Column(Boolean, nullable=False, default=False)

    # Anonymous read-only capability. Set once, never rotated.
    share_token = Column(String(64), unique=True, nullable=True)

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    owner = relationship("User", back_populates="mindmaps")
    shares = relationship(
        "MindmapShare",
        back_populates="mindmap",
        cascade="all, delete-orphan",
        order_by="MindmapShare.created_at",
    )


class MindmapShare(Base):
    """Per-user grant to view (or edit) one mindmap."""

    __tablename__ = "mindmap_shares"
    __table_args__ = (
        Index("ix_mindmap_shares_user_id", "user_id"),
    )

    mindmap_id = Column(
        String(36),
        ForeignKey("mindmaps.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    can_edit = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    mindmap = relationship("Mindmap", back_populates="shares")
    user = relationship("User", back_populates="received_shares", foreign_keys=[user_id])
