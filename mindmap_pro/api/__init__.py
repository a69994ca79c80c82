"""API routes."""

from .mindmaps import router as mindmaps_router
from .auth_routes import router as auth_router
from .users import router as users_router
from .admin import router as admin_router

__all__ = [
    "mindmaps_router",
    "auth_router",
    "users_router",
    "admin_router",
]
