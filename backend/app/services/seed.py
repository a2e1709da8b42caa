"""
Demo fixtures for local and test environments.

Idempotent: rows are looked up by email / title first, so running the seed
any number of times leaves exactly one copy of each. Never invoked in
production (see app.main).
"""

from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.logging import get_logger
from app.core.security import hash_password
from app.core.time_utils import utcnow
from app.models.event import Event
from app.models.user import ROLE_ATTENDEE, ROLE_ORGANIZER, User

logger = get_logger(__name__)

DEMO_USERS = (
    {
        "email": "organizer@example.com",
        "username": "organizer",
        "full_name": "Demo Organizer",
        "password": "organizer123",
        "role": ROLE_ORGANIZER,
    },
    {
        "email": "alice@example.com",
        "username": "alice",
        "full_name": "Alice",
        "password": "password123",
        "role": ROLE_ATTENDEE,
    },
)

DEMO_EVENT = {
    "title": "Python Meetup",
    "category": "Meetup",
    "description": "Monthly meetup for Python developers",
    "location": "San Francisco, CA",
    "capacity": 5,
    "auto_approve": True,
}


async def _get_or_create_user(session: AsyncSession, entry: dict) -> tuple[User, bool]:
    existing = (await session.execute(select(User).where(User.email == entry["email"]))).scalar_one_or_none()
    if existing:
        return existing, False
    user = User(
        email=entry["email"],
        username=entry["username"],
        full_name=entry["full_name"],
        hashed_password=hash_password(entry["password"]),
        role=entry["role"],
    )
    session.add(user)
    await session.flush()
    return user, True


async def seed_demo_data(session_factory: async_sessionmaker[AsyncSession]) -> dict[str, int]:
    """Create the demo organizer, attendee and event if missing. Returns how many rows were created."""
    created = {"users": 0, "events": 0}
    async with session_factory() as session:
        async with session.begin():
            users = []
            for entry in DEMO_USERS:
                user, was_created = await _get_or_create_user(session, entry)
                users.append(user)
                created["users"] += int(was_created)

            organizer = users[0]
            existing_event = (
                await session.execute(
                    select(Event).where(Event.title == DEMO_EVENT["title"], Event.organizer_id == organizer.id)
                )
            ).scalar_one_or_none()
            if existing_event is None:
                start = utcnow() + timedelta(days=30)
                session.add(
                    Event(
                        **DEMO_EVENT,
                        date=start,
                        registration_closes_at=start - timedelta(days=1),
                        approved_count=0,
                        organizer_id=organizer.id,
                    )
                )
                created["events"] += 1

    logger.info("demo_data_seeded", **created)
    return created
