"""
Shared fixtures: an in-memory SQLite database seeded with two teams.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("AUTO_CREATE_TABLES", "false")

import uuid

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from auth.models import CallerIdentity
from connectors.encryption import reset_cipher
from connectors.registry import AdapterRegistry
from database.models import Base, Team, User

ADMIN_ID = uuid.UUID("00000000-0000-0000-0000-0000000000a1")
MEMBER_ID = uuid.UUID("00000000-0000-0000-0000-0000000000b1")
OTHER_TEAM_ID = uuid.UUID("00000000-0000-0000-0000-0000000000c2")
LONER_ID = uuid.UUID("00000000-0000-0000-0000-0000000000d0")


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
    )

    # pysqlite needs explicit BEGIN for SAVEPOINT support.
    @event.listens_for(engine.sync_engine, "connect")
    def _no_implicit_tx(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as seed:
        seed.add_all([Team(id=1, name="Team One"), Team(id=2, name="Team Two")])
        await seed.flush()
        seed.add_all(
            [
                User(user_id=ADMIN_ID, email="admin@one.test", team_id=1, role="admin"),
                User(user_id=MEMBER_ID, email="member@one.test", team_id=1, role="member"),
                User(user_id=OTHER_TEAM_ID, email="admin@two.test", team_id=2, role="admin"),
                User(user_id=LONER_ID, email="loner@none.test", team_id=None),
            ]
        )
        await seed.commit()

    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def admin() -> CallerIdentity:
    return CallerIdentity(user_id=str(ADMIN_ID), team_id=1, role="admin")


@pytest.fixture
def member() -> CallerIdentity:
    return CallerIdentity(user_id=str(MEMBER_ID), team_id=1, role="member")


@pytest.fixture
def other_team() -> CallerIdentity:
    return CallerIdentity(user_id=str(OTHER_TEAM_ID), team_id=2, role="admin")


@pytest.fixture(autouse=True)
def _fresh_registry_and_cipher():
    AdapterRegistry.reset()
    reset_cipher()
    yield
    AdapterRegistry.reset()
    reset_cipher()
