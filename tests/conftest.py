"""
Test configuration and fixtures for Gutmap.

Implements the transaction rollback pattern:
- Session-scoped in-memory SQLite engine
- Function-scoped transactional session with automatic rollback
- TestClient with database dependency override
"""

from datetime import datetime, timezone
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from gutmap.api.insights import insights_service
from gutmap.database import get_db
from gutmap.main import app
from gutmap.models import Base
from gutmap.services.event_queue import event_queues


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def test_engine():
    """
    Create the test database engine once per session.

    A single shared in-memory connection, so every session sees the tables.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(test_engine) -> Generator[Session, None, None]:
    """
    Provide a transactional database session that rolls back after each test.

    Commits inside the code under test stay within the outer transaction.
    """
    connection = test_engine.connect()
    transaction = connection.begin()

    TestingSessionLocal = sessionmaker(bind=connection, expire_on_commit=False)
    session = TestingSessionLocal()

    yield session

    session.close()
    transaction.rollback()
    connection.close()


# =============================================================================
# TestClient Fixtures
# =============================================================================


@pytest.fixture
def client(db: Session) -> Generator[TestClient, None, None]:
    """
    TestClient with database dependency override.

    The database session is injected into the app's get_db dependency.
    """

    def override_get_db():
        try:
            yield db
        finally:
            pass  # Don't close - managed by db fixture

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# =============================================================================
# Process-wide state
# =============================================================================


@pytest.fixture(autouse=True)
def reset_process_state():
    """Pending events and the insights cache live in memory across requests."""
    event_queues.reset()
    insights_service.clear_cache()
    yield
    event_queues.reset()
    insights_service.clear_cache()


@pytest.fixture
def now() -> datetime:
    """Fixed reference time so window-based calculations are deterministic."""
    return datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# pytest markers
# =============================================================================


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
