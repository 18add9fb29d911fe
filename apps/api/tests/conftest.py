"""
Test configuration and fixtures.

Provides:
- SQLite database rebuilt for every test
- Users, a provisioned organization and a linked client
- HTTPX AsyncClient factory with session cookie and CSRF header
"""
import os
import tempfile
import uuid
from dataclasses import dataclass
from typing import AsyncGenerator, Callable, Generator

# Must be set before app modules read settings
_TEST_DIR = tempfile.mkdtemp(prefix="briefdesk-tests-")
os.environ["TESTING"] = "1"
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DIR}/test.db"
os.environ["JWT_SECRET"] = "test-secret-with-enough-length-for-hs256"

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.deps import COOKIE_NAME, CSRF_HEADER, CSRF_HEADER_VALUE, get_db
from app.core.security import create_session_token, hash_password
from app.core.tenancy import resolve_caller
from app.db import models  # noqa: F401  (registers tables)
from app.db.base import Base
from app.db.enums import Role, SubscriptionPlan
from app.db.models import Organization, Task, User
from app.db.session import SessionLocal, engine
from app.main import app
from app.schemas.auth import CallerContext
from app.services import link_service, org_service

TEST_PASSWORD = "correct-horse-battery"


# =============================================================================
# Settings
# =============================================================================

@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Local storage only, no external providers."""
    monkeypatch.setattr(settings, "LOCAL_STORAGE_PATH", str(tmp_path / "uploads"))
    monkeypatch.setattr(settings, "GOOGLE_DRIVE_CREDENTIALS_FILE", "")
    monkeypatch.setattr(settings, "S3_BUCKET", "")
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "")
    monkeypatch.setattr(settings, "GEMINI_API_KEY", "")
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "")
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", "")
    monkeypatch.setattr(settings, "DEMO_MODE", False)


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Fresh schema per test; app code commits freely."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


def _make_user(
    db: Session,
    role: Role = Role.CLIENT,
    email: str | None = None,
    is_master_admin: bool = False,
    company_name: str | None = None,
) -> User:
    user = User(
        email=email or f"{role.value}-{uuid.uuid4().hex[:8]}@test.com",
        display_name="Test User",
        role=role.value,
        is_master_admin=is_master_admin,
        company_name=company_name,
        password_hash=hash_password(TEST_PASSWORD),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _make_task(db: Session, owner: User, org: Organization, **fields) -> Task:
    task = Task(owner_user_id=owner.id, organization_id=org.id, **fields)
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


def _caller_for(db: Session, user: User) -> CallerContext:
    db.refresh(user)
    return resolve_caller(db, user)


@pytest.fixture
def make_user(db: Session) -> Callable[..., User]:
    """Factory: make_user(role=Role.CLIENT, email=None, is_master_admin=False, company_name=None)."""
    return lambda *args, **kwargs: _make_user(db, *args, **kwargs)


@pytest.fixture
def make_task(db: Session) -> Callable[..., Task]:
    return lambda owner, org, **fields: _make_task(db, owner, org, **fields)


@pytest.fixture
def caller_for(db: Session) -> Callable[[User], CallerContext]:
    return lambda user: _caller_for(db, user)


@pytest.fixture
def provider(db: Session) -> User:
    return _make_user(db, Role.SERVICE_PROVIDER)


@pytest.fixture
def org(db: Session, provider: User) -> Organization:
    return org_service.ensure_provisioned(db, provider, "Acme Studio", SubscriptionPlan.SIX_MONTH)


@pytest.fixture
def client_user(db: Session, org: Organization) -> User:
    user = _make_user(db, Role.CLIENT, company_name="Client Co")
    link_service.redeem_invite(db, user.id, org.invite_code)
    return user


@pytest.fixture
def admin(db: Session) -> User:
    return _make_user(db, Role.SERVICE_PROVIDER, is_master_admin=True)


# =============================================================================
# Client Fixtures
# =============================================================================

@dataclass
class TestAuth:
    """Test authentication context."""
    user: User
    token: str
    cookie_name: str = COOKIE_NAME


def auth_for(user: User) -> TestAuth:
    return TestAuth(
        user=user,
        token=create_session_token(user.id, user.role, user.token_version),
    )


@pytest.fixture(scope="function")
async def client_factory(
    db: Session,
) -> AsyncGenerator[Callable[..., AsyncClient], None]:
    """
    Build AsyncClients bound to the test session.

    `client_factory()` is anonymous; `client_factory(user)` carries the
    user's session cookie. Both send the CSRF header unless csrf=False.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    clients: list[AsyncClient] = []

    def factory(user: User | None = None, csrf: bool = True) -> AsyncClient:
        cookies = {}
        if user is not None:
            auth = auth_for(user)
            cookies[auth.cookie_name] = auth.token
        headers = {CSRF_HEADER: CSRF_HEADER_VALUE} if csrf else {}
        c = AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
            cookies=cookies,
            headers=headers,
        )
        clients.append(c)
        return c

    yield factory

    for c in clients:
        await c.aclose()
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def client(client_factory) -> AsyncClient:
    """Unauthenticated client for public endpoints."""
    return client_factory()
