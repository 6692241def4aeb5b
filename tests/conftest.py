"""
Shared fixtures: a throwaway SQLite database per test, seeded profiles,
a deterministic clock, an in-memory attachment store and a realtime hub.
"""

import os

# Settings are read at import time; point them at SQLite before anything loads
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["STORE_RETRY_BASE_DELAY"] = "0"

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import httpx
import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool

from case_threads.core.database import create_session_factory, get_session
from case_threads.models import Base, Profile, UserRole
from case_threads.services import (
    AttachmentStore,
    CommentStore,
    DispatchScheduler,
    NotificationDispatcher,
    ReadReceiptTracker,
    RealtimeHub,
    StoredAttachment,
    UserInfo,
)


# =============================================================================
# HELPERS
# =============================================================================


class FakeClock:
    """Returns a strictly increasing time, one second per call."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.current = self.current + timedelta(seconds=1)
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


class FakeAttachmentStore(AttachmentStore):
    """Keeps uploads in memory."""

    def __init__(self):
        self.uploads: list[tuple[UUID, str, int]] = []

    async def upload(self, data: bytes, filename: str, mimetype: str, owner_id: UUID) -> StoredAttachment:
        self.uploads.append((owner_id, filename, len(data)))
        return StoredAttachment(
            url=f"https://files.test/{owner_id}/{filename}",
            filename=filename,
            mimetype=mimetype,
            size=len(data),
        )


class EventRecorder:
    """Realtime handler that keeps every event it receives."""

    def __init__(self):
        self.events = []

    async def __call__(self, event) -> None:
        self.events.append(event)

    @property
    def types(self) -> list[str]:
        return [event.type for event in self.events]


@dataclass
class People:
    admin: UserInfo
    koordinator: UserInfo
    tove: UserInfo
    tim: UserInfo
    inactive: UserInfo
    customer: UserInfo


async def count_rows(session_factory, model, *criteria) -> int:
    """Count rows in a fresh session so writes from background tasks are visible."""
    async with session_factory() as session:
        result = await session.execute(select(func.count()).select_from(model).where(*criteria))
        return result.scalar_one()


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'threads.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def people(session: AsyncSession) -> People:
    specs = {
        "admin": ("Anna Admin", UserRole.ADMIN, True),
        "koordinator": ("Karl Koordinator", UserRole.KOORDINATOR, True),
        "tove": ("Tove Tekniker", UserRole.TECHNICIAN, True),
        "tim": ("Tim Tekniker", UserRole.TECHNICIAN, True),
        "inactive": ("Ivar Inaktiv", UserRole.TECHNICIAN, False),
        "customer": ("Cecilia Kund", UserRole.CUSTOMER, True),
    }
    infos = {}
    for key, (name, role, active) in specs.items():
        profile = Profile(id=uuid4(), display_name=name, role=role, is_active=active)
        session.add(profile)
        infos[key] = UserInfo(id=profile.id, display_name=name, role=role, is_active=active)
    await session.commit()
    return People(**infos)


@pytest.fixture
async def hub():
    hub = RealtimeHub(queue_size=100)
    yield hub
    await hub.close()


@pytest.fixture
def attachment_store() -> FakeAttachmentStore:
    return FakeAttachmentStore()


@pytest.fixture
def dispatcher(session_factory, hub) -> NotificationDispatcher:
    return NotificationDispatcher(session_factory, hub)


@pytest.fixture
async def scheduler(dispatcher):
    scheduler = DispatchScheduler(dispatcher)
    yield scheduler
    await scheduler.drain()


@pytest.fixture
def store(session, hub, scheduler, attachment_store, clock) -> CommentStore:
    return CommentStore(
        session,
        hub=hub,
        scheduler=scheduler,
        attachment_store=attachment_store,
        clock=clock,
    )


@pytest.fixture
def tracker(session_factory, hub) -> ReadReceiptTracker:
    return ReadReceiptTracker(session_factory, hub=hub)


@pytest.fixture
async def client(session_factory, hub, attachment_store):
    from case_threads.main import app, configure_state

    configure_state(app, session_factory, hub, attachment_store=attachment_store)

    async def override_get_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    await app.state.dispatch_scheduler.drain()
    app.dependency_overrides.clear()
