"""
Pytest fixtures for test database, client, admission controller and authentication.

Every test gets its own SQLite database file (or TEST_DATABASE_URL when set),
created from the models and dropped afterwards. The HTTP client and the
admission controller share that database; notifications are captured by a
recording notifier instead of being sent.
"""

import os

# Settings are read once at import time; keep tests off Redis and SMTP.
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("NOTIFIER_BACKEND", "log")

from datetime import datetime, timezone, timedelta
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.main import app
from app.api.deps import get_admission_controller
from app.db.base import Base
from app.db.session import build_engine, build_session_factory, get_db
from app.core.security import create_access_token, hash_password
from app.models.event import Event
from app.models.participant import Participant, ParticipantStatus
from app.models.user import User, ROLE_ORGANIZER
from app.services.admission_service import AdmissionController
from app.services.interfaces.notifier import Notification, Notifier
from app.services.notification_service import NotificationDispatcher


class RecordingNotifier(Notifier):
    """Keeps every notification in memory."""

    def __init__(self):
        self.sent: list[Notification] = []

    async def notify(self, notification: Notification) -> None:
        self.sent.append(notification)

    def outcomes_for(self, contact: str) -> list[str]:
        return [n.outcome.value for n in self.sent if n.contact == contact]


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create tables in a fresh database, drop them afterwards."""
    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    engine = build_engine(url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return build_session_factory(test_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for arranging and inspecting rows directly."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture
async def dispatcher(notifier: RecordingNotifier) -> AsyncGenerator[NotificationDispatcher, None]:
    dispatcher = NotificationDispatcher(notifier)
    yield dispatcher
    await dispatcher.drain()


@pytest.fixture
def controller(session_factory, dispatcher) -> AdmissionController:
    return AdmissionController(session_factory=session_factory, dispatcher=dispatcher)


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, controller) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client wired to the test database and the test controller."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_admission_controller] = lambda: controller

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _create_user(db_session: AsyncSession, email: str, username: str, role: str = "attendee") -> User:
    user = User(
        email=email,
        username=username,
        full_name=username.title(),
        hashed_password=hash_password("testpassword123"),
        role=role,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


def _headers_for(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': str(user.id)})}"}


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """An attendee account."""
    return await _create_user(db_session, "test@example.com", "testuser")


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "other@example.com", "otheruser")


@pytest_asyncio.fixture
async def organizer(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "organizer@example.com", "organizer", role=ROLE_ORGANIZER)


@pytest_asyncio.fixture
async def auth_token(test_user: User) -> str:
    """Generate a JWT token for the test user."""
    return create_access_token(data={"sub": str(test_user.id)})


@pytest_asyncio.fixture
async def auth_headers(auth_token: str) -> dict:
    """Authorization headers with Bearer token."""
    return {"Authorization": f"Bearer {auth_token}"}


@pytest_asyncio.fixture
async def other_headers(other_user: User) -> dict:
    return _headers_for(other_user)


@pytest_asyncio.fixture
async def organizer_headers(organizer: User) -> dict:
    return _headers_for(organizer)


@pytest_asyncio.fixture
async def make_event(db_session: AsyncSession, organizer: User):
    """Factory for events owned by the organizer."""

    async def _make(
        capacity: int = 3,
        auto_approve: bool = True,
        title: str = "Test Concert",
        days_ahead: int = 30,
        closes_at: datetime | None = None,
        **fields,
    ) -> Event:
        date = datetime.now(timezone.utc) + timedelta(days=days_ahead)
        event = Event(
            title=title,
            description="A test event",
            date=date,
            location="Test Venue",
            registration_closes_at=closes_at or date,
            capacity=capacity,
            approved_count=0,
            auto_approve=auto_approve,
            organizer_id=organizer.id,
            **fields,
        )
        db_session.add(event)
        await db_session.commit()
        await db_session.refresh(event)
        return event

    return _make


@pytest_asyncio.fixture
async def test_event(make_event) -> Event:
    """Auto-approving event with 100 seats."""
    return await make_event(capacity=100, auto_approve=True)


@pytest_asyncio.fixture
async def small_event(make_event) -> Event:
    """Auto-approving event with a single seat."""
    return await make_event(capacity=1, auto_approve=True, title="Tiny Workshop")


@pytest_asyncio.fixture
async def moderated_event(make_event) -> Event:
    """Event where every registration waits for an organizer."""
    return await make_event(capacity=2, auto_approve=False, title="Moderated Meetup")


@pytest.fixture
def assert_consistent(session_factory):
    """
    Check the admission invariants of one event against the database:
    approved_count matches the Approved rows and stays within capacity, and
    Pending positions run 1..N.
    """

    async def _check(event_id: int) -> tuple[Event, list[Participant]]:
        async with session_factory() as session:
            event = (await session.execute(select(Event).where(Event.id == event_id))).scalar_one()
            participants = list(
                (await session.execute(select(Participant).where(Participant.event_id == event_id))).scalars().all()
            )

        approved = [p for p in participants if p.status == ParticipantStatus.APPROVED.value]
        pending = sorted(
            (p for p in participants if p.status == ParticipantStatus.PENDING.value),
            key=lambda p: p.queue_position,
        )
        assert event.approved_count == len(approved)
        assert 0 <= event.approved_count <= event.capacity
        assert [p.queue_position for p in pending] == list(range(1, len(pending) + 1))
        assert all(p.queue_position == 0 for p in approved)
        return event, participants

    return _check
