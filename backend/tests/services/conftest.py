"""Service test fixtures — async DB, wired engine with fake collaborators, test client.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - get_db dependency overridden to use test DB session
    - db_manager initialized for background tasks that bypass get_db
    - The engine factory hands out FakeAnalyst / FakeNotifier, never the network

Design Decisions:
    - SQLite in-memory: fast, no external dependency, sufficient for route tests
      (PostgreSQL-specific features not exercised here)
    - db_manager patched: background tasks use db_manager.session() directly
    - One StaticPool connection: every session of a test sees the same in-memory DB
"""

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncSession, create_async_engine, async_sessionmaker,
)
from sqlalchemy.pool import StaticPool
from httpx import ASGITransport, AsyncClient

from app.core.domain_types import MessageRole, Stage
from app.core.records import SessionMembers
from app.db.base import Base
from app.infrastructure.database import get_db, DatabaseSessionManager
from app.models.session import Session as SessionModel
from app.services import engine_factory
from app.services.engine_factory import build_engine
import app.infrastructure.database as db_module
import app.models  # noqa: F401
from app.main import app

from tests.services.fakes import FakeAnalyst, FakeNotifier


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False, poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def fake_analyst(monkeypatch):
    analyst = FakeAnalyst()
    monkeypatch.setattr(engine_factory, "_build_gap_analyst", lambda: analyst)
    return analyst


@pytest.fixture
def fake_notifier(monkeypatch):
    notifier = FakeNotifier()
    monkeypatch.setattr(engine_factory, "_notification_channel", notifier)
    return notifier


@pytest.fixture
def engine(test_db, fake_analyst, fake_notifier):
    return build_engine(test_db)


@pytest.fixture
async def members(test_db, engine) -> SessionMembers:
    """A session between alice and bob, both on ONBOARDING."""
    session = SessionModel(
        user_a_id="alice", user_a_name="Alice",
        user_b_id="bob", user_b_name="Bob",
        status="active",
    )
    test_db.add(session)
    await test_db.commit()
    for user_id in ("alice", "bob"):
        await engine.tracker.begin(session.id, user_id)
    return SessionMembers(
        session_id=session.id,
        user_a_id="alice", user_a_name="Alice",
        user_b_id="bob", user_b_name="Bob",
    )


_REQUIRED = {
    Stage.ONBOARDING: [("compact_signed", True)],
    Stage.WITNESS: [("feel_heard_confirmed", True)],
    Stage.PERSPECTIVE_STRETCH: [("empathy_consented", True)],
    Stage.NEED_MAPPING: [("needs_confirmed", True), ("common_ground_confirmed", True)],
}


async def walk_to(engine, session_id, user_id, target: Stage) -> None:
    """Satisfy required gates and advance until the user is on `target`."""
    current = await engine.tracker.current_stage(session_id, user_id)
    while current < target:
        for key, value in _REQUIRED[current]:
            await engine.tracker.satisfy_gate(session_id, user_id, current, key, value)
        await engine.tracker.advance(session_id, user_id, current)
        current = current.next


@pytest.fixture
def walk():
    return walk_to


@pytest.fixture
async def client(test_engine, test_session_factory, fake_analyst, fake_notifier):
    """FastAPI test client with DB dependency overridden."""
    # Override get_db for route-level dependency injection
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    # Patch db_manager for background tasks that use it directly
    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = test_session_factory
    db_module.db_manager = fake_manager

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    db_module.db_manager = original_manager


async def ready_direction(
    engine, members, guesser="alice", subject="bob",
    statement="You were exhausted and felt nobody noticed.",
    witnessing="I was running everything at home and felt completely alone.",
):
    """Guesser HELD, subject past WITNESS with witnessing content on record."""
    sid = members.session_id
    await walk_to(engine, sid, guesser, Stage.PERSPECTIVE_STRETCH)
    await walk_to(engine, sid, subject, Stage.PERSPECTIVE_STRETCH)
    await engine.messages.add(
        sid, subject, MessageRole.USER, witnessing, Stage.WITNESS, sender_id=subject,
    )
    return await engine.ledger.submit(sid, guesser, statement)


@pytest.fixture
def ready():
    return ready_direction
