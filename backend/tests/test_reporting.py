"""
Tests for occupancy, participant listings and the seed step.
"""

import pytest
from sqlalchemy import func, select

from app.core.exceptions import EventNotFound
from app.models.event import Event
from app.models.user import User
from app.services.reporting_service import (
    get_occupancy,
    list_participants,
    list_user_registrations,
    occupancy_percentage,
    status_breakdown,
)
from app.services.seed import DEMO_EVENT, seed_demo_data


def test_occupancy_percentage():
    assert occupancy_percentage(0, 10) == 0.0
    assert occupancy_percentage(1, 3) == 33.33
    assert occupancy_percentage(3, 3) == 100.0


@pytest.mark.asyncio
async def test_get_occupancy(controller, session_factory, make_event):
    event = await make_event(capacity=2, auto_approve=True)
    for i in range(3):
        await controller.register(event.id, f"guest{i}@example.com", f"Guest {i}")

    async with session_factory() as session:
        occupancy = await get_occupancy(session, event.id)

    assert occupancy == {
        "event_id": event.id,
        "capacity": 2,
        "approved_count": 2,
        "pending_count": 1,
        "available": 0,
        "percentage": 100.0,
        "auto_approve": True,
    }


@pytest.mark.asyncio
async def test_get_occupancy_missing_event(session_factory, test_engine):
    async with session_factory() as session:
        with pytest.raises(EventNotFound):
            await get_occupancy(session, 4242)


@pytest.mark.asyncio
async def test_list_participants_ordering(controller, session_factory, small_event):
    holder = await controller.register(small_event.id, "alice@example.com", "Alice")
    first = await controller.register(small_event.id, "bob@example.com", "Bob")
    second = await controller.register(small_event.id, "carol@example.com", "Carol")
    await controller.withdraw(small_event.id, "bob@example.com")

    async with session_factory() as session:
        event, participants, counts = await list_participants(session, small_event.id)

    assert event.id == small_event.id
    assert [p.id for p in participants] == [holder.id, second.id, first.id]
    assert counts["approved"] == 1
    assert counts["pending"] == 1
    assert counts["withdrawn"] == 1


@pytest.mark.asyncio
async def test_list_user_registrations(controller, session_factory, test_event, moderated_event, test_user):
    await controller.register(test_event.id, test_user.email, "Test", user_id=test_user.id)
    await controller.register(moderated_event.id, test_user.email, "Test", user_id=test_user.id)
    await controller.withdraw(moderated_event.id, test_user.email)

    async with session_factory() as session:
        everything = await list_user_registrations(session, test_user.id, test_user.email)
        active = await list_user_registrations(session, test_user.id, test_user.email, active_only=True)

    assert len(everything) == 2
    assert [p.event_id for p in active] == [test_event.id]
    assert active[0].event.title == test_event.title


@pytest.mark.asyncio
async def test_seed_is_idempotent(session_factory, test_engine):
    first = await seed_demo_data(session_factory)
    second = await seed_demo_data(session_factory)

    assert first == {"users": 2, "events": 1}
    assert second == {"users": 0, "events": 0}

    async with session_factory() as session:
        users = await session.scalar(select(func.count(User.id)))
        events = await session.scalar(select(func.count(Event.id)).where(Event.title == DEMO_EVENT["title"]))
    assert users == 2
    assert events == 1


@pytest.mark.asyncio
async def test_status_breakdown_lists_every_status(controller, session_factory, moderated_event):
    participant = await controller.register(moderated_event.id, "alice@example.com", "Alice")
    await controller.reject(moderated_event.id, participant.id)
    await controller.register(moderated_event.id, "bob@example.com", "Bob")

    async with session_factory() as session:
        counts = await status_breakdown(session, moderated_event.id)

    assert counts == {"pending": 1, "approved": 0, "rejected": 1, "waitlisted": 0, "withdrawn": 0}
