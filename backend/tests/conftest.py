"""
Pytest configuration and shared fixtures for the Topflix backend tests.
"""

import json
from datetime import date
from typing import Any, Dict, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import topflix.models  # noqa: F401
from topflix.core.cache import VersionedCache
from topflix.db import Base
from topflix.repositories.content_store import ContentStore
from topflix.schemas.content import ContentItemIn


class FakeCacheBackend:
    """In-memory stand-in for CacheService.

    Values go through a JSON round trip like the real backend. Setting
    ``broken`` makes every call raise, as an unreachable Redis would.
    """

    def __init__(self):
        self.data: Dict[str, Any] = {}
        self.ttls: Dict[str, int] = {}
        self.broken = False
        self.reads = 0

    def _check(self):
        if self.broken:
            raise ConnectionError("cache unavailable")

    def get_json(self, key: str) -> Optional[Any]:
        self._check()
        self.reads += 1
        if key not in self.data:
            return None
        return json.loads(self.data[key])

    def set_json(self, key: str, value: Any, ttl_seconds: int) -> bool:
        self._check()
        self.data[key] = json.dumps(value)
        self.ttls[key] = ttl_seconds
        return True

    def get_int(self, key: str, default: Optional[int] = None) -> Optional[int]:
        self._check()
        self.reads += 1
        value = self.data.get(key)
        return int(value) if value is not None else default

    def incr(self, key: str, ttl_seconds: int) -> Optional[int]:
        self._check()
        value = int(self.data.get(key, 0)) + 1
        self.data[key] = str(value)
        self.ttls[key] = ttl_seconds
        return value

    def list_keys(self, prefix: str):
        return [k for k in self.data if k.startswith(prefix)]

    def ping(self) -> bool:
        return not self.broken


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def cache_backend():
    return FakeCacheBackend()


@pytest.fixture
def store(db, cache_backend):
    return ContentStore(db, VersionedCache(cache_backend))


@pytest.fixture
def make_item():
    """Factory for upsert items with sensible defaults, accepting overrides."""

    def _make(external_id: int = 1, media_type: str = "movie", **overrides) -> ContentItemIn:
        fields = {
            "external_id": external_id,
            "type": media_type,
            "title": f"Title {external_id}",
            "title_original": f"Original {external_id}",
            "year": 2024,
            "genre": "Drama, Thriller",
            "origin_country": ["US"],
            "tmdb_rating": 7.5,
        }
        fields.update(overrides)
        return ContentItemIn(**fields)

    return _make


@pytest.fixture
def today():
    return date(2025, 3, 10)
