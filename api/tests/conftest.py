from __future__ import annotations

import os

# Configure the app for an isolated in-memory run before any app import
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEMA_MODE"] = "ensure"
os.environ["BACKGROUND_TASKS_ENABLED"] = "false"
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")
os.environ.pop("REDIS_URL", None)

from typing import Callable, Generator

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from cities_collective import cache, models, schemas
from cities_collective.auth import create_access_token
from cities_collective.db import Base, SessionLocal, engine
from cities_collective.main import app
from cities_collective.schema import ensure_schema, reset_schema_cache
from cities_collective.services import cities as city_service


@pytest.fixture(autouse=True)
def fresh_database() -> Generator[None, None, None]:
    """Every test starts from empty tables."""
    Base.metadata.drop_all(engine)
    reset_schema_cache()
    ensure_schema()
    yield


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch) -> fakeredis.FakeRedis:
    client = fakeredis.FakeRedis(decode_responses=True)
    monkeypatch.setattr(cache, "_redis_client", client)
    cache.reset_cache_stats()
    return client


@pytest.fixture()
def client() -> Generator[TestClient, None, None]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def db() -> Generator[Session, None, None]:
    """Create a database session for testing."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture()
def make_user(db: Session) -> Callable[..., models.User]:
    """Insert a user directly; no password hashing."""
    counter = {"n": 0}

    def _make(username: str | None = None, **fields) -> models.User:
        counter["n"] += 1
        username = username or f"user{counter['n']}"
        user = models.User(
            email=fields.pop("email", f"{username}@example.com"),
            username=username,
            social_links={},
            **fields,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture()
def make_city(db: Session) -> Callable[..., models.City]:
    def _make(owner: models.User, **fields) -> models.City:
        fields.setdefault("city_name", "Test City")
        return city_service.create_city(db, owner.id, schemas.CityCreate(**fields))

    return _make


@pytest.fixture()
def image_payload() -> Callable[[str], schemas.CityImageCreate]:
    def _payload(name: str = "shot") -> schemas.CityImageCreate:
        return schemas.CityImageCreate(
            file_name=f"{name}.jpg",
            original_name=f"{name}.jpg",
            mime_type="image/jpeg",
            thumbnail_path=f"images/thumbnail/{name}.webp",
            medium_path=f"images/medium/{name}.webp",
            large_path=f"images/large/{name}.webp",
            original_path=f"images/original/{name}.jpg",
        )

    return _payload


@pytest.fixture()
def auth_headers() -> Callable[[models.User], dict[str, str]]:
    def _headers(user: models.User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers
