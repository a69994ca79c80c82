"""Data access repositories."""

from .base import BaseRepository
from .mindmap_repository import MindmapRepository
from .share_repository import ShareRepository
from .user_repository import UserRepository
from .setting_repository import SettingRepository

__all__ = [
    "BaseRepository",
    "MindmapRepository",
    "ShareRepository",
    "UserRepository",
    "SettingRepository",
]
