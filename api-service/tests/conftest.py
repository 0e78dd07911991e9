"""
Shared fixtures
Model instances are built transient. ``db_session`` is the only fixture
that talks to a database, an in-memory SQLite one.
"""

from typing import Optional
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.core.principal import Principal
from app.core.rbac import SystemRole, UserStatus
from app.models import Role, User


@compiles(JSONB, "sqlite")
def _jsonb_as_sqlite_json(type_, compiler, **kw):
    return "JSON"


@pytest_asyncio.fixture
async def db_session():
    """Real async session over in-memory SQLite"""
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)

    # Hand transaction control to SQLAlchemy so savepoints behave
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def mock_db():
    """Create a mock async database session"""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.flush = AsyncMock()
    return db


@pytest.fixture
def role_factory():
    def _make(
        name: str = SystemRole.STANDARD_USER.value,
        *,
        is_system_role: Optional[bool] = None,
        permissions=None,
    ) -> Role:
        return Role(
            id=uuid4(),
            name=name,
            display_name=name.replace("_", " ").title(),
            is_system_role=name in {r.value for r in SystemRole} if is_system_role is None else is_system_role,
            permissions=permissions,
        )

    return _make


@pytest.fixture
def user_factory(role_factory):
    def _make(
        *,
        role_name: Optional[str] = SystemRole.STANDARD_USER.value,
        status: str = UserStatus.ACTIVE.value,
        customer_id: Optional[UUID] = None,
        auth_user_id: Optional[str] = None,
        email: Optional[str] = None,
        is_deleted: bool = False,
        app_metadata: Optional[dict] = None,
    ) -> User:
        role = role_factory(role_name) if role_name else None
        user_id = uuid4()
        return User(
            id=user_id,
            email=email or f"user-{user_id.hex[:8]}@example.com",
            status=status,
            customer_id=customer_id,
            auth_user_id=auth_user_id,
            is_deleted=is_deleted,
            app_metadata=app_metadata or {},
            role=role,
            role_id=role.id if role else None,
        )

    return _make


@pytest.fixture
def principal_factory():
    def _make(
        role_name: Optional[str] = SystemRole.STANDARD_USER.value,
        *,
        tenant_id: Optional[UUID] = None,
        role_id: Optional[UUID] = None,
    ) -> Principal:
        user_id = uuid4()
        return Principal(
            user_id=user_id,
            email=f"principal-{user_id.hex[:8]}@example.com",
            status=UserStatus.ACTIVE.value,
            tenant_id=tenant_id,
            role_id=role_id or uuid4(),
            role_name=role_name,
            auth_subject=f"auth|{user_id.hex}",
        )

    return _make
