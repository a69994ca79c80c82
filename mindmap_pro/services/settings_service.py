"""Runtime settings provider.

Admin-editable feature flags live in the ``settings`` table and are read at
call time, never captured at startup. Reads go through the cache under
``settings:{key}``; writes commit first, then delete the cached entry.

A fresh provider is built per request (see ``get_settings_provider``) and
handed to the services that need it.
"""

import json
import logging
from typing import Any, Dict, Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from ..core.cache import get_cache
from ..core.config import settings as app_settings
from ..database import commit_or_raise, get_db
from ..repositories import SettingRepository

logger = logging.getLogger(__name__)

KEY_PREFIX = "settings:"

DEFAULT_SETTINGS: Dict[str, Dict[str, Any]] = {
    "recaptcha_enabled": {
        "value": False,
        "description": "Enable reCAPTCHA on login and registration",
    },
    "smtp_settings": {
        "value": {
            "host": "",
            "port": 587,
            "secure": False,
            "user": "",
            "password": "",
            "from": "",
        },
        "description": "SMTP configuration for outgoing email",
    },
    "cache_settings": {
        "value": {"enabled": True, "ttl": 300},
        "description": "Mindmap cache configuration (ttl in seconds)",
    },
    "general_settings": {
        "value": {
            "appName": "MindMap Pro",
            "allowRegistration": True,
            "requireEmailVerification": False,
            "maxMindmapsPerUser": 100,
        },
        "description": "General application settings",
    },
}


def _cache_key(key: str) -> str:
    return f"{KEY_PREFIX}{key}"


class SettingsProvider:
    """Per-call reader and writer for runtime settings."""

    def __init__(self, db: Session, cache):
        self.db = db
        self.cache = cache
        self.repo = SettingRepository(db)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value for *key*.

        Falls back to the shipped default, then to *default*.
        """
        cached = self.cache.get(_cache_key(key))
        if cached is not None:
            try:
                return json.loads(cached)
            except ValueError:
                logger.warning("[Settings] Discarding unreadable cached value for %s", key)
                self.cache.delete(_cache_key(key))

        setting = self.repo.get(key)
        if setting is None:
            fallback = DEFAULT_SETTINGS.get(key)
            return fallback["value"] if fallback else default

        self.cache.set(_cache_key(key), json.dumps(setting.value), app_settings.settings_cache_ttl)
        return setting.value

    def get_all(self) -> Dict[str, Any]:
        """Every setting as a ``{key: value}`` map, defaults filled in."""
        values = {key: entry["value"] for key, entry in DEFAULT_SETTINGS.items()}
        for setting in self.repo.all():
            values[setting.key] = setting.value
        return values

    def update(self, values: Dict[str, Any]) -> Dict[str, Any]:
        """Upsert each key, commit, then invalidate the cached copies."""
        for key, value in values.items():
            description = DEFAULT_SETTINGS.get(key, {}).get("description")
            self.repo.upsert(key, value, description)
        commit_or_raise(self.db)
        if values:
            self.cache.delete(*(_cache_key(key) for key in values))
        return self.get_all()

    def _section(self, key: str) -> Dict[str, Any]:
        value = self.get(key)
        return value if isinstance(value, dict) else {}

    # --- Typed accessors -------------------------------------------------

    def cache_enabled(self) -> bool:
        return bool(self._section("cache_settings").get("enabled", True))

    def cache_ttl(self) -> int:
        ttl = self._section("cache_settings").get("ttl")
        if isinstance(ttl, int) and ttl > 0:
            return ttl
        return app_settings.mindmap_cache_ttl

    def allow_registration(self) -> bool:
        return bool(self._section("general_settings").get("allowRegistration", True))

    def require_email_verification(self) -> bool:
        return bool(self._section("general_settings").get("requireEmailVerification", False))

    def max_mindmaps_per_user(self) -> Optional[int]:
        """Per-user mindmap quota, or None when unlimited."""
        limit = self._section("general_settings").get("maxMindmapsPerUser")
        if isinstance(limit, int) and limit > 0:
            return limit
        return None


def get_settings_provider(
    db: Session = Depends(get_db),
    cache=Depends(get_cache),
) -> SettingsProvider:
    """FastAPI dependency: a provider bound to this request's session."""
    return SettingsProvider(db, cache)
