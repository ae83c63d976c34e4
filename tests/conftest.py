"""
- Spins up an in-memory SQLite DB shared across threads
- Creates tables before tests run, wipes rows between tests
- Overrides FastAPI's get_db so routes use the test session
- Provides a client fixture (TestClient(app)) with the override applied
"""
import os
from typing import Generator

import pytest

# Set before the app is imported: no dev-only startup hooks, no real DB, no CPU pause
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("CPU_DELAY_MIN_SEC", "0")
os.environ.setdefault("CPU_DELAY_MAX_SEC", "0")

from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from onorder import main as app_main
from onorder import models  # noqa: F401  (registers tables)
from onorder.db import Base, get_db
from onorder.main import app
from onorder.store import MemoryPersistence

TEST_DATABASE_URL = "sqlite+pysqlite:///:memory:"


@pytest.fixture(scope="session")
def engine():
    # StaticPool: TestClient's worker thread and the test see ONE in-memory DB
    engine = create_engine(
        TEST_DATABASE_URL,
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session(engine) -> Generator:
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    db = TestingSessionLocal()
    try:
        yield db
        db.rollback()
    finally:
        db.close()


@pytest.fixture(autouse=True)
def _clean_db(engine):
    """The repository commits, so rows would leak between tests."""
    with engine.begin() as conn:
        conn.execute(text("DELETE FROM match_records"))
        conn.execute(text("DELETE FROM match_sessions"))
    yield


@pytest.fixture(autouse=True)
def override_dep(db_session, monkeypatch):
    """Test session for every request, and a fresh live-match cache per test."""
    def _get_db_for_tests():
        yield db_session

    app.dependency_overrides[get_db] = _get_db_for_tests
    monkeypatch.setattr(app_main, "live_matches", MemoryPersistence())
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    return TestClient(app)
