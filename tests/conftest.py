"""Shared test fixtures for the MindMap Pro test suite.

Tests run against an in-memory SQLite database (one shared connection via
StaticPool). The schema is dropped and recreated before each test, so every
test starts empty. Redis is replaced by ``InMemoryCache``, which implements
the same best-effort interface as ``RedisCache``.
"""

import os

# Configure the app before any imports from it.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = "redis://localhost:6399/15"
os.environ["LOG_FORMAT"] = "text"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_PER_MINUTE"] = "0"
os.environ["ENVIRONMENT"] = "development"

import fnmatch
import time
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from mindmap_pro.core import cache as cache_module
from mindmap_pro.core.cache import get_cache
from mindmap_pro.database import Base, engine, get_db, SessionLocal
from mindmap_pro.main import app
from mindmap_pro.middleware.request_context import rate_limiter
from mindmap_pro.models import User
from mindmap_pro.repositories import UserRepository
from mindmap_pro.services.auth_service import hash_password, issue_token

DEFAULT_PASSWORD = "password123"


class InMemoryCache:
    """Dict-backed stand-in for RedisCache with TTL bookkeeping."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, Optional[int]] = {}
        self._expires: dict[str, float] = {}

    def get(self, key: str) -> Optional[str]:
        expires = self._expires.get(key)
        if expires is not None and time.monotonic() >= expires:
            self.delete(key)
        return self.store.get(key)

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        self.store[key] = value
        self.ttls[key] = ttl_seconds
        if ttl_seconds:
            self._expires[key] = time.monotonic() + ttl_seconds
        else:
            self._expires.pop(key, None)

    def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
            self._expires.pop(key, None)
        return removed

    def keys(self, pattern: str = "*") -> list[str]:
        return [k for k in self.store if fnmatch.fnmatchcase(k, pattern)]

    def flush_all(self) -> None:
        self.store.clear()
        self.ttls.clear()
        self._expires.clear()

    def ping(self) -> bool:
        return True


@pytest.fixture(autouse=True)
def _reset_schema():
    """Recreate every table before each test for isolation."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def db():
    """Per-test database session."""
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture()
def cache():
    return InMemoryCache()


@pytest.fixture()
def client(db, cache):
    """TestClient with the DB session and cache dependencies overridden.

    Entering the client runs the app lifespan, which seeds the admin account
    and the default settings.
    """

    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_cache] = lambda: cache
    cache_module._cache = cache
    rate_limiter.reset()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    cache_module._cache = None


def make_user(
    db,
    email: str = "user@example.com",
    password: str = DEFAULT_PASSWORD,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    role: str = "USER",
    is_active: bool = True,
    is_verified: bool = True,
) -> User:
    """Factory inserting a committed user."""
    user = UserRepository(db).create(
        email=email,
        password_hash=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        role=role,
        is_active=is_active,
        is_verified=is_verified,
    )
    db.commit()
    return user


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {issue_token(user)}"}


@pytest.fixture()
def owner(db) -> User:
    return make_user(db, "owner@example.com", first_name="Olive", last_name="Owner")


@pytest.fixture()
def friend(db) -> User:
    return make_user(db, "friend@example.com", first_name="Fred")


@pytest.fixture()
def stranger(db) -> User:
    return make_user(db, "stranger@example.com")
