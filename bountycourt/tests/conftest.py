from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import JSON, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from bountycourt.common.enums import ActorRole
from bountycourt.db.base import Base
from bountycourt.db.models import *  # noqa: F401,F403 - ensure all models loaded
from bountycourt.tests.factories import NOW, REASON, fake_settle, make_cancellation, new_actor

# Use SQLite for testing - remap JSONB to JSON
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"


# Make JSONB render as JSON for SQLite
@event.listens_for(Base.metadata, "before_create")
def _remap_jsonb(target, connection, **kw):
    if connection.dialect.name == "sqlite":
        for table in target.tables.values():
            for column in table.columns:
                if isinstance(column.type, JSONB):
                    column.type = JSON()


@pytest.fixture(scope="session")
async def test_engine():
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    # Let SQLAlchemy emit BEGIN itself so SAVEPOINTs work under aiosqlite
    @event.listens_for(engine.sync_engine, "connect")
    def _no_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _explicit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Session bound to an outer transaction; its commits only release savepoints."""
    async with test_engine.connect() as conn:
        outer = await conn.begin()
        session = AsyncSession(
            bind=conn, expire_on_commit=False, join_transaction_mode="create_savepoint"
        )
        try:
            yield session
        finally:
            await session.close()
            await outer.rollback()


@pytest.fixture
async def committing_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Session whose commits are real, for checks made from another connection."""
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session
        await session.rollback()

    # Plain DELETEs bypass the append-only mapper events
    async with test_engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(table.delete())


@pytest.fixture
async def client(db_session):
    from bountycourt.api.deps import get_db
    from bountycourt.main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------- Actors ----------


@pytest.fixture
def poster():
    return new_actor(ActorRole.USER)


@pytest.fixture
def hunter():
    return new_actor(ActorRole.USER)


@pytest.fixture
def outsider():
    return new_actor(ActorRole.USER)


@pytest.fixture
def admin():
    return new_actor(ActorRole.ADMIN)


# ---------- Dispute rows ----------


@pytest.fixture
async def cancellation(db_session, poster, hunter):
    return await make_cancellation(db_session, poster, hunter)


@pytest.fixture
async def dispute(db_session, cancellation, hunter):
    from bountycourt.core.disputes.service import DisputeService

    return await DisputeService().create_dispute(db_session, hunter, cancellation.id, REASON, now=NOW)


@pytest.fixture
async def reviewed_dispute(db_session, dispute, admin):
    from bountycourt.core.disputes.service import DisputeService

    return await DisputeService().mark_under_review(db_session, admin, dispute.id, now=NOW)


# ---------- Collaborators ----------


@pytest.fixture(autouse=True)
def settlement():
    """Mock the settlement rails; tests swap ``side_effect`` to simulate failures."""
    with patch(
        "bountycourt.integrations.settlement.SettlementClient.settle",
        new_callable=AsyncMock,
        side_effect=fake_settle,
    ) as mock:
        yield mock


@pytest.fixture(autouse=True)
def notifications():
    with patch(
        "bountycourt.integrations.notifier.NotificationClient.notify", new_callable=AsyncMock
    ) as mock:
        yield mock


@pytest.fixture(autouse=True)
def settlement_retries():
    """Mock Celery apply_async() so no broker is needed."""
    with patch("bountycourt.tasks.dispute_tasks.settle_resolution.apply_async") as mock:
        yield mock
