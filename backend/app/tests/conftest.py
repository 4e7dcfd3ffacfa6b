"""Pytest configuration for app tests

WHAT: Provides shared fixtures for service-level and HTTP endpoint tests
WHY: Ensures consistent test setup, database isolation, and Shopify mocking
REFERENCES:
    - app/main.py: FastAPI application
    - app/database.py: Database configuration
    - app/deps.py: Dependency injection
    - app/services/shopify_client.py: Shopify GraphQL client
"""

import pytest
import os
from datetime import datetime
from typing import Callable, Generator, List

import httpx
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

# Ensure backend is in path
import sys
from pathlib import Path
BACKEND_ROOT = Path(__file__).resolve().parents[2]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

# Set test environment
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
# Must be URL-safe base64-encoded 32-byte string (app.security validates at import time)
os.environ.setdefault("TOKEN_ENCRYPTION_KEY", "MDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDA=")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.pop("SENTRY_DSN", None)


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def test_db_engine():
    """Create in-memory test database engine."""
    # StaticPool keeps one connection so TestClient's worker thread sees the same DB
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):  # noqa: ARG001
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # Create all tables
    from app.database import Base
    Base.metadata.create_all(bind=engine)

    yield engine

    # Cleanup
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def test_db_session(test_db_engine) -> Generator[Session, None, None]:
    """Create test database session with rollback."""
    SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=test_db_engine
    )

    session = SessionLocal()
    yield session
    session.rollback()
    session.close()


# ============================================================================
# Application & Client Fixtures
# ============================================================================

@pytest.fixture
def app(test_db_session):
    """Create FastAPI test application."""
    from app.main import create_app

    test_app = create_app()

    # Override database dependency; the session stays open so fixtures
    # created before a request remain usable after it
    from app.database import get_db

    def override_get_db():
        yield test_db_session

    test_app.dependency_overrides[get_db] = override_get_db

    return test_app


@pytest.fixture
def client(app) -> TestClient:
    """Create TestClient for HTTP testing."""
    return TestClient(app)


# ============================================================================
# Model Fixtures
# ============================================================================

def _make_user(session: Session, email: str, name: str, password: str = "correct-horse-battery"):
    from app.models import AuthCredential, User
    from app.security import get_password_hash

    user = User(email=email, name=name, created_at=datetime.utcnow())
    session.add(user)
    session.flush()
    session.add(AuthCredential(user_id=user.id, password_hash=get_password_hash(password)))
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def test_user(test_db_session):
    """Create test user with a password credential."""
    return _make_user(test_db_session, "test@example.com", "Test User")


@pytest.fixture
def other_user(test_db_session):
    """Second user (for owner isolation tests)."""
    return _make_user(test_db_session, "other@example.com", "Other User")


# ============================================================================
# Authentication Fixtures
# ============================================================================

@pytest.fixture
def test_user_token(test_user):
    """JWT for test_user, as issued by /auth/login."""
    from app.security import create_access_token

    return create_access_token(subject=test_user.email)


@pytest.fixture
def auth_headers(test_user_token):
    """Standard auth headers for requests."""
    return {"Authorization": f"Bearer {test_user_token}"}


# ============================================================================
# Shopify Fixtures
# ============================================================================

@pytest.fixture
def shopify_transport() -> Callable:
    """Build an httpx.MockTransport that replays queued GraphQL responses.

    Usage:
        transport, requests = shopify_transport([
            (200, {"data": {...}}),
            (429, {}, {"Retry-After": "2"}),
        ])

    Each entry is (status, json_body) or (status, json_body, headers). The
    list of received httpx.Request objects is returned alongside.
    """
    def build(responses: List[tuple]):
        queue = list(responses)
        requests: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if not queue:
                raise AssertionError(f"Unexpected Shopify request: {request.content!r}")
            status, body, *rest = queue.pop(0)
            headers = rest[0] if rest else {}
            if isinstance(body, Exception):
                raise body
            return httpx.Response(status, json=body, headers=headers)

        return httpx.MockTransport(handler), requests

    return build


@pytest.fixture
def make_shopify_client(shopify_transport):
    """Create a ShopifyClient backed by queued responses."""
    from app.services.shopify_client import ShopifyClient

    def build(responses: List[tuple], max_retries: int = 6):
        transport, requests = shopify_transport(responses)
        client = ShopifyClient(
            shop_domain="test-store.myshopify.com",
            access_token="shpat_test",
            max_retries=max_retries,
            transport=transport,
        )
        return client, requests

    return build
