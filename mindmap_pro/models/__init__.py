"""Database models."""

from .user import User, ActivityLog, Role
from .mindmap import Mindmap, MindmapShare, Visibility
from .setting import Setting

__all__ = [
    "User", "ActivityLog", "Role",
    "Mindmap", "MindmapShare", "Visibility",
    "Setting",
]
