"""Shared test fixtures for all test modules."""

import contextlib
from datetime import UTC, datetime
from typing import Any

import jwt
import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import orgpulse.models  # noqa: F401
from orgpulse.core import database as db_module
from orgpulse.core.config import settings
from orgpulse.core.database import Base, get_db
from orgpulse.schemas.activity import ActivityRecord

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)

TEST_JWT_SECRET = "test-jwt-secret-with-enough-length-for-hs256"
TEST_ENCRYPTION_KEY = "test-encryption-key-that-is-at-least-32-chars"
TEST_USER_ID = "11111111-2222-3333-4444-555555555555"
TEST_ORG_ID = "org-1"


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database. Clears data after each test.
    """
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture(autouse=True)
def auth_settings(monkeypatch):
    """Known JWT and encryption secrets for every test."""
    monkeypatch.setattr(settings, "SUPABASE_JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setattr(settings, "ENCRYPTION_KEY", TEST_ENCRYPTION_KEY)


@pytest.fixture
def db_session():
    """Create a database session for testing."""
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


def make_token(sub: str = TEST_USER_ID, **claims: Any) -> str:
    payload = {"sub": sub, "aud": "authenticated", **claims}
    return jwt.encode(payload, TEST_JWT_SECRET, algorithm="HS256")


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token()}"}


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=UTC)


def make_record(
    timestamp: datetime | str,
    profile_id: str = "u1",
    event_type: str = "view",
    organization_id: str = TEST_ORG_ID,
    record_id: str | None = None,
    **details: Any,
) -> ActivityRecord:
    """Build an activity record the way a raw row would arrive."""
    return ActivityRecord.from_row(
        {
            "id": record_id or f"{profile_id}-{timestamp}",
            "organization_id": organization_id,
            "profile_id": profile_id,
            "event_type": event_type,
            "event_details": details or None,
            "timestamp": timestamp,
        }
    )
