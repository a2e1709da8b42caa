"""
Read-only projections over events and participants.

Nothing here writes; numbers come straight from the ledger columns and
the registry queries the admission controller maintains.
"""

from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.event import Event
from app.models.participant import ACTIVE_STATUSES, Participant, ParticipantStatus
from app.services.event_service import get_event
from app.services.participant_registry import ParticipantRegistry, normalize_contact


def occupancy_percentage(approved_count: int, capacity: int) -> float:
    if capacity <= 0:
        return 0.0
    return round(approved_count / capacity * 100, 2)


async def get_occupancy(db: AsyncSession, event_id: int) -> dict:
    event = await get_event(db, event_id)
    pending = await ParticipantRegistry(db).count_by_status(event_id, ParticipantStatus.PENDING)
    return {
        "event_id": event.id,
        "capacity": event.capacity,
        "approved_count": event.approved_count,
        "pending_count": pending,
        "available": max(event.capacity - event.approved_count, 0),
        "percentage": occupancy_percentage(event.approved_count, event.capacity),
        "auto_approve": event.auto_approve,
    }


async def status_breakdown(db: AsyncSession, event_id: int) -> dict[str, int]:
    """Participant count per status, zero for statuses nobody holds."""
    await get_event(db, event_id)
    return await ParticipantRegistry(db).counts_by_status(event_id)


async def list_participants(db: AsyncSession, event_id: int) -> tuple[Event, list[Participant], dict[str, int]]:
    """Participants ordered Approved, Pending (by queue position), then history."""
    event = await get_event(db, event_id)
    participants = await ParticipantRegistry(db).list_for_event(event_id)
    counts = await status_breakdown(db, event_id)
    return event, participants, counts


async def list_participants_for_notification(
    db: AsyncSession,
    event_id: int,
    status: Optional[str] = None,
    participant_ids: Optional[list[int]] = None,
) -> list[Participant]:
    query = select(Participant).where(Participant.event_id == event_id)
    if status:
        query = query.where(Participant.status == status)
    if participant_ids:
        query = query.where(Participant.id.in_(participant_ids))
    result = await db.execute(query.order_by(Participant.id))
    return list(result.scalars().all())


async def list_user_registrations(
    db: AsyncSession,
    user_id: int,
    email: str,
    active_only: bool = False,
) -> list[Participant]:
    """Registrations linked to the account or made with its email, newest first."""
    query = (
        select(Participant)
        .options(selectinload(Participant.event))
        .where(or_(Participant.user_id == user_id, Participant.email == normalize_contact(email)))
        .order_by(Participant.registered_at.desc(), Participant.id.desc())
    )
    if active_only:
        query = query.where(Participant.status.in_([s.value for s in ACTIVE_STATUSES]))
    result = await db.execute(query)
    return list(result.scalars().all())
