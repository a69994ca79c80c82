"""Business logic services."""

from .mindmap_service import MindmapService
from .settings_service import SettingsProvider
from .admin_service import AdminService

__all__ = ["MindmapService", "SettingsProvider", "AdminService"]
