"""
Test configuration for the screening access service.
"""
import os

# Settings are read at import time; keep tests away from the real database
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SEED_DEMO_DATA", "false")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from screening_access.access.registry import InMemoryAccessGrantRegistry, SqlAccessGrantRegistry
from screening_access.access.seed import seed_demo_grants
from screening_access.auth.flow import FlowRegistry, VerificationFlow
from screening_access.auth.service import SessionAuthenticator
from screening_access.auth.store import InMemoryCredentialStore
from screening_access.auth.utils import RecordingEmailTransport
from screening_access.core.clock import FrozenClock
from screening_access.database import Base, get_db
from screening_access.main import app

# Test database URL
TEST_DATABASE_URL = "sqlite://"

# Create test database engine
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test session factory
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# The demo codes were issued in January 2024
DEMO_NOW = datetime(2024, 1, 16, 10, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def db():
    """
    Create a fresh database for each test.
    """
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock():
    return FrozenClock(DEMO_NOW)


@pytest.fixture
def transport():
    return RecordingEmailTransport()


@pytest.fixture
def store():
    return InMemoryCredentialStore()


@pytest.fixture
def grants(clock):
    registry = InMemoryAccessGrantRegistry(clock=clock)
    seed_demo_grants(registry)
    return registry


@pytest.fixture
def flow(store, transport, clock):
    return VerificationFlow(store=store, transport=transport, clock=clock, latency=0)


@pytest.fixture
def authenticator(store, grants, clock):
    return SessionAuthenticator(store, grants, clock=clock, latency=0)


@pytest.fixture(scope="function")
def client(db, clock, transport):
    """
    Create a test client with a test database session, a frozen clock and
    a recording email transport.
    """
    def override_get_db():
        try:
            yield db
        finally:
            pass

    seed_demo_grants(SqlAccessGrantRegistry(db, clock=clock))

    app.dependency_overrides[get_db] = override_get_db
    app.state.clock = clock
    app.state.flows = FlowRegistry(transport, clock=clock)

    with TestClient(app) as client:
        yield client

    app.dependency_overrides = {}
