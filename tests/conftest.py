"""Pytest configuration and fixtures."""

from __future__ import annotations

from pathlib import Path
from typing import AsyncIterator, Callable

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from taskscope.config import ServiceSettings
from taskscope.main import create_app
from taskscope.models import Membership, Organization, Task, User
from taskscope.services import register_audit_handlers
from taskscope.shared.auth import IdentityContext, create_access_token
from taskscope.shared.auth.rbac import GlobalRole, OrgRole
from taskscope.shared.database import DatabaseSessionManager, db_manager
from taskscope.shared.events.dispatcher import EventDispatcher, event_dispatcher


@pytest.fixture(scope="session")
def rsa_key_paths(tmp_path_factory) -> tuple[Path, Path]:
    """RSA key pair written once per test session."""
    key_dir = tmp_path_factory.mktemp("keys")
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_path = key_dir / "private.pem"
    public_path = key_dir / "public.pem"
    private_path.write_bytes(private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ))
    public_path.write_bytes(private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ))
    return private_path, public_path


@pytest.fixture
def settings(tmp_path, rsa_key_paths) -> ServiceSettings:
    private_path, public_path = rsa_key_paths
    return ServiceSettings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'taskscope.db'}",
        jwt_private_key_path=str(private_path),
        jwt_public_key_path=str(public_path),
        audit_queue_size=100,
    )


@pytest.fixture
async def database(settings) -> AsyncIterator[DatabaseSessionManager]:
    """Fresh on-disk SQLite database bound to the global session manager."""
    db_manager.init(settings.database_url)
    await db_manager.create_all()
    yield db_manager
    await db_manager.close()


@pytest.fixture
async def session(database) -> AsyncIterator[AsyncSession]:
    async with database.session_factory() as session:
        yield session


@pytest.fixture
async def dispatcher(database) -> AsyncIterator[EventDispatcher]:
    """Running event dispatcher that records audited events into the test database."""
    await event_dispatcher.start(maxsize=100)
    register_audit_handlers(event_dispatcher, database.session_factory)
    yield event_dispatcher
    await event_dispatcher.stop()


# ---- Factories ----

@pytest.fixture
def make_user(session) -> Callable:
    counter = {"n": 0}

    async def _make_user(
        email: str | None = None,
        role: GlobalRole = GlobalRole.VIEWER,
        is_active: bool = True,
        hashed_password: str = "not-a-real-hash",
    ) -> User:
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@example.com",
            hashed_password=hashed_password,
            first_name="Test",
            last_name=f"User{counter['n']}",
            role=role.value,
            is_active=is_active,
        )
        session.add(user)
        await session.flush()
        return user

    return _make_user


@pytest.fixture
def make_org(session) -> Callable:
    async def _make_org(name: str = "Acme") -> Organization:
        org = Organization(name=name)
        session.add(org)
        await session.flush()
        return org

    return _make_org


@pytest.fixture
def add_member(session) -> Callable:
    async def _add_member(org: Organization, user: User, role: OrgRole) -> Membership:
        membership = Membership(organization_id=org.id, user_id=user.id, role=role.value)
        session.add(membership)
        await session.flush()
        return membership

    return _add_member


@pytest.fixture
def make_task(session) -> Callable:
    async def _make_task(
        org: Organization,
        creator: User,
        title: str = "Task",
        assignee: User | None = None,
        **fields,
    ) -> Task:
        task = Task(
            organization_id=org.id,
            title=title,
            created_by_id=creator.id,
            assigned_to_id=assignee.id if assignee else None,
            **fields,
        )
        session.add(task)
        await session.flush()
        return task

    return _make_task


@pytest.fixture
def identity_of() -> Callable[[User], IdentityContext]:
    def _identity_of(user: User) -> IdentityContext:
        return IdentityContext(id=user.id, email=user.email, global_role=GlobalRole(user.role))

    return _identity_of


# ---- HTTP ----

@pytest.fixture
def app(settings, database):
    return create_app(settings)


@pytest.fixture
async def client(app) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
def auth_headers(settings) -> Callable[[User], dict[str, str]]:
    private_key = Path(settings.jwt_private_key_path).read_text()

    def _auth_headers(user: User) -> dict[str, str]:
        token = create_access_token(
            {"sub": str(user.id), "email": user.email, "role": user.role},
            private_key,
            settings.jwt_algorithm,
        )
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers
