"""
Pytest configuration and fixtures.
"""

from __future__ import annotations

import os
from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tests.test_constants import TEST_INTERNAL_JOB_TOKEN

# Force an in-memory SQLite database; don't inherit DATABASE_URL from .env
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["INTERNAL_JOB_TOKEN"] = TEST_INTERNAL_JOB_TOKEN


@pytest.fixture
def db() -> Iterator[Session]:
    """Fresh schema per test. Each test gets its own in-memory database."""
    import app.models  # noqa: F401  (registers tables)
    from app.db.session import Base

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def store(db: Session):
    """Coordination store over the test session."""
    from app.coordination.store import SqlCoordinationStore

    return SqlCoordinationStore(db, sweep_batch_limit=500)


@pytest.fixture
def client(db: Session) -> Iterator[TestClient]:
    """TestClient with get_db overridden to use the test session."""
    from app.db.session import get_db
    from app.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    c = TestClient(app)
    yield c
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Iterator[None]:
    """Settings are lru_cached; tests that patch env must not leak into others."""
    from app.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
