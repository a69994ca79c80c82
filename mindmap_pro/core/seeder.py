"""Seed the administrator account and default runtime settings on startup.

Idempotent: an existing admin account or setting row is never touched.
"""

import logging

from sqlalchemy.orm import Session

from .config import settings

logger = logging.getLogger(__name__)


def seed_admin_user(db: Session) -> bool:
    """Create the configured admin account unless any admin exists.

    Returns True when an account was created.
    """
    from ..models.user import Role
    from ..repositories import UserRepository
    from ..services.auth_service import hash_password

    repo = UserRepository(db)
    if repo.count_admins() > 0:
        logger.debug("Admin account present, skipping seed")
        return False

    if repo.get_by_email(settings.admin_email) is not None:
        logger.warning(
            "Seed admin email %s belongs to a non-admin account, skipping seed",
            settings.admin_email,
        )
        return False

    repo.create(
        email=settings.admin_email,
        password_hash=hash_password(settings.admin_password),
        first_name="Admin",
        last_name="User",
        role=Role.ADMIN.value,
        is_verified=True,
    )
    db.commit()
    logger.info("Seeded admin account %s", settings.admin_email)
    return True


def seed_default_settings(db: Session) -> int:
    """Insert every default setting that has no row yet. Returns rows added."""
    from ..models.setting import Setting
    from ..services.settings_service import DEFAULT_SETTINGS

    existing = {key for (key,) in db.query(Setting.key).all()}
    added = 0
    for key, entry in DEFAULT_SETTINGS.items():
        if key in existing:
            continue
        value = entry["value"]
        if key == "cache_settings":
            value = {**value, "ttl": settings.mindmap_cache_ttl}
        db.add(Setting(key=key, value=value, description=entry["description"]))
        added += 1

    if added:
        db.commit()
        logger.info("Seeded %d default settings", added)
    return added
