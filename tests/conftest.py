"""
tests/conftest.py -- Shared test fixtures for TaskHub unit and integration tests.

This module provides:
  - make_engine(): creates an isolated named shared-memory SQLite engine
  - settings / engine / services: one wired core per test (function scope)
  - acme: the canonical Acme organization (Alice OWNER, Bob ADMIN, Carol MEMBER)
  - api_client: TestClient against the real app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process. A uuid
suffix keeps every test's database separate.

The DEBUG env var must be set before api.main is imported, because the module
reads Settings at import time to configure middleware.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: Set DEBUG before any api import so get_settings() can
# auto-generate secrets in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from api.limiter import limiter
from api.main import app, init_state
from audit.store import AuditTrail
from auth.identity import IdentityService
from auth.models import Actor, Role, User
from auth.policy import OWN_TASKS_POLICY, AuthorizationEngine
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import Settings
from core.database import create_db_engine
from tasks.repository import TaskRepository
from tasks.store import TaskStore

TEST_SECRET = "test-access-secret-" + "a" * 32
TEST_REFRESH_SECRET = "test-refresh-secret-" + "b" * 32
OWNER_PASSWORD = "alice-password-1"

# Rate limits are exercised explicitly where needed, never by accident.
limiter.enabled = False


def make_engine(db_suffix: str | None = None) -> Engine:
    """Create an isolated named shared-memory SQLite engine with the schema applied."""
    name = db_suffix or uuid.uuid4().hex
    return create_db_engine(f"sqlite:///file:taskhub_{name}?mode=memory&cache=shared&uri=true")


def make_settings(**overrides) -> Settings:
    values = {
        "debug": True,
        "secret_key": TEST_SECRET,
        "refresh_secret_key": TEST_REFRESH_SECRET,
        "bcrypt_rounds": 4,
    }
    values.update(overrides)
    return Settings(**values)


class RecordingNotifier:
    """Notifier that keeps what it was asked to send, for assertions."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    def send_temporary_password(self, email: str, temporary_password: str) -> None:
        self.sent.append((email, temporary_password))


@dataclass
class Services:
    settings: Settings
    engine: Engine
    users: UserStore
    task_store: TaskStore
    audit: AuditTrail
    authorization: AuthorizationEngine
    tokens: TokenService
    identity: IdentityService
    tasks: TaskRepository
    notifier: RecordingNotifier


def build_services(settings: Settings, engine: Engine, policy=OWN_TASKS_POLICY) -> Services:
    users = UserStore(engine)
    task_store = TaskStore(engine)
    audit = AuditTrail(engine, page_size=settings.audit_page_size)
    authorization = AuthorizationEngine(policy)
    notifier = RecordingNotifier()
    return Services(
        settings=settings,
        engine=engine,
        users=users,
        task_store=task_store,
        audit=audit,
        authorization=authorization,
        tokens=TokenService(settings, users),
        identity=IdentityService(settings, users, authorization, audit, notifier),
        tasks=TaskRepository(task_store, users, authorization, audit),
        notifier=notifier,
    )


@dataclass
class Org:
    """A registered organization with one user per role."""

    organization_id: str
    owner: User
    admin: User
    member: User

    @property
    def owner_actor(self) -> Actor:
        return Actor.from_user(self.owner)

    @property
    def admin_actor(self) -> Actor:
        return Actor.from_user(self.admin)

    @property
    def member_actor(self) -> Actor:
        return Actor.from_user(self.member)


def seed_org(services: Services, name: str, domain: str) -> Org:
    """Register name with an OWNER, then add an ADMIN and a MEMBER."""
    owner, organization = services.identity.register_organization_owner(
        f"alice@{domain}", OWNER_PASSWORD, "Alice", "Owner", name
    )
    admin, _ = services.identity.add_user_to_organization(
        f"bob@{domain}", "Bob", "Admin", Role.ADMIN, Actor.from_user(owner)
    )
    member, _ = services.identity.add_user_to_organization(
        f"carol@{domain}", "Carol", "Member", Role.MEMBER, Actor.from_user(owner)
    )
    return Org(organization_id=organization.id, owner=owner, admin=admin, member=member)


# ---------------------------------------------------------------------------
# Core fixtures -- function scope, one fresh database per test
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    eng = make_engine()
    yield eng
    eng.dispose()


@pytest.fixture
def services(settings: Settings, engine: Engine) -> Services:
    return build_services(settings, engine)


@pytest.fixture
def acme(services: Services) -> Org:
    return seed_org(services, "Acme", "acme.test")


@pytest.fixture
def globex(services: Services) -> Org:
    return seed_org(services, "Globex", "globex.test")


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(settings: Settings, engine: Engine):
    """Return an async context manager that replaces the real lifespan.

    Wires the test engine into app.state through the same init_state() the
    real lifespan uses, so routes see an isolated in-memory database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        init_state(app, settings, engine)
        yield

    return test_lifespan


@pytest.fixture
def api_client(settings: Settings, engine: Engine) -> Generator[TestClient, None, None]:
    """Yield a TestClient for the real app backed by a fresh database."""
    app.router.lifespan_context = _patch_lifespan(settings, engine)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client
