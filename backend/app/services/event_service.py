"""
Event service handling CRUD operations.

Capacity and auto-approval are admission state: edits to them go through
the admission controller, everything else is plain CRUD here.
"""

from datetime import datetime, timezone
from sqlalchemy import delete, select, func
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from app.core.exceptions import EventNotFound
from app.core.time_utils import to_utc
from app.models.event import Event
from app.models.participant import Participant
from app.schemas.event import EventCreate, EventUpdate
from app.core.logging import get_logger

logger = get_logger(__name__)

# Fields an organizer may change without touching admission state
DETAIL_FIELDS = ("title", "description", "category", "date", "location", "status", "registration_closes_at")


async def create_event(db: AsyncSession, event_data: EventCreate, organizer_id: int) -> Event:
    """Create a new event with no approved participants."""
    if event_data.date <= datetime.now(timezone.utc):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Event date must be in the future",
        )

    event = Event(
        title=event_data.title,
        description=event_data.description,
        category=event_data.category,
        date=event_data.date,
        location=event_data.location,
        registration_closes_at=event_data.registration_closes_at,
        capacity=event_data.capacity,
        approved_count=0,
        auto_approve=event_data.auto_approve,
        organizer_id=organizer_id,
    )
    db.add(event)
    await db.flush()
    await db.refresh(event)

    logger.info("event_created", event_id=event.id, title=event.title, capacity=event.capacity)
    return event


async def get_event(db: AsyncSession, event_id: int) -> Event:
    """Get a single event by ID."""
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalar_one_or_none()

    if not event:
        raise EventNotFound(event_id)
    return event


def detail_changes(event_data: EventUpdate) -> dict:
    return event_data.model_dump(exclude_unset=True, exclude_none=True, include=set(DETAIL_FIELDS))


def validate_event_update(event: Event, event_data: EventUpdate) -> None:
    """
    Check the edit against the stored event without applying it.

    Runs before any admission change so a rejected edit leaves capacity
    and the waitlist untouched.
    """
    changes = detail_changes(event_data)
    date = changes.get("date", event.date)
    closes_at = changes.get("registration_closes_at", event.registration_closes_at)
    if to_utc(closes_at) > to_utc(date):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="registration_closes_at must not be after the event date",
        )


async def update_event_details(db: AsyncSession, event: Event, event_data: EventUpdate) -> Event:
    """Apply non-admission field edits."""
    validate_event_update(event, event_data)
    changes = detail_changes(event_data)
    for field_name, value in changes.items():
        setattr(event, field_name, value)

    await db.flush()
    await db.refresh(event)
    if changes:
        logger.info("event_updated", event_id=event.id, fields=sorted(changes))
    return event


async def delete_event(db: AsyncSession, event_id: int) -> Event:
    """Delete an event together with all of its participants."""
    event = await get_event(db, event_id)
    removed = await db.execute(delete(Participant).where(Participant.event_id == event_id))
    await db.delete(event)
    await db.flush()

    logger.info("event_deleted", event_id=event_id, participants_removed=removed.rowcount)
    return event


async def list_events(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    upcoming_only: bool = True,
    category: str | None = None,
    event_status: str | None = None,
) -> tuple[list[Event], int]:
    """
    List events with pagination.
    Uses the ix_events_date index for efficient date filtering.
    """
    query = select(Event)

    if upcoming_only:
        query = query.where(Event.date >= datetime.now(timezone.utc))
    if category:
        query = query.where(Event.category == category)
    if event_status:
        query = query.where(Event.status == event_status)

    # Get total count
    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    events_query = (
        query
        .order_by(Event.date.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(events_query)
    events = list(result.scalars().all())

    return events, total
