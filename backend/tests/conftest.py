"""Pytest configuration and fixtures."""

import os

# Must be set before waitline.core.config is first imported
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("TIMEZONE", "UTC")

import pytest
from datetime import datetime, timezone
from typing import Callable, Generator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from waitline.core.clock import ManualClock
from waitline.core.config import Settings
from waitline.core.deps import get_clock, get_settings
from waitline.db.base import Base
from waitline.db.session import enable_sqlite_foreign_keys, get_db
from waitline.main import app
# Import all models to ensure they're registered with Base.metadata
from waitline.models import *
from waitline.models.queue import DiningTable, TableStatus
from waitline.services.queue_ledger import QueueLedger
from waitline.services.table_allocator import TableAllocator

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

# Tuesday 12:00 UTC, lunch rush
START = datetime(2024, 1, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        rate_limit_enabled=False,
        timezone="UTC",
        admission_ceiling=8,
        confirmation_window_minutes=10,
    )


@pytest.fixture
def ledger(db_session: Session, clock: ManualClock, test_settings: Settings) -> QueueLedger:
    return QueueLedger(db_session, clock=clock, settings=test_settings)


@pytest.fixture
def allocator(db_session: Session) -> TableAllocator:
    return TableAllocator(db_session)


@pytest.fixture
def make_table(db_session: Session) -> Callable[..., DiningTable]:
    """Factory for tables that skips the allocator's audit path."""

    def _make(label: str, capacity: int = 4, status: TableStatus = TableStatus.AVAILABLE) -> DiningTable:
        table = DiningTable(label=label, capacity=capacity, status=TableStatus(status).value)
        db_session.add(table)
        db_session.commit()
        db_session.refresh(table)
        return table

    return _make


@pytest.fixture(scope="function")
def client(db_session: Session, clock: ManualClock, test_settings: Settings) -> Generator[TestClient, None, None]:
    """Create a test client with database, clock and settings overrides."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_settings] = lambda: test_settings
    # Disable rate limiting during tests to avoid flaky failures
    from waitline.core.rate_limit import limiter
    limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    limiter.enabled = True
    app.dependency_overrides.clear()
