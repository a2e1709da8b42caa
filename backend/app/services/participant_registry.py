"""
Participant registry: status and queue position per (event, contact).

Only the admission controller writes through the registry, inside the
event's critical section. Reads used by reporting go through the same
queries so ordering rules live in one place.
"""

from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import DuplicateRegistration, ParticipantNotFound
from app.core.logging import get_logger
from app.models.participant import (
    ACTIVE_STATUSES,
    Participant,
    ParticipantStatus,
)

logger = get_logger(__name__)

# Approved first, then the waitlist, then history
STATUS_PRIORITY = case(
    (Participant.status == ParticipantStatus.APPROVED.value, 0),
    (Participant.status == ParticipantStatus.PENDING.value, 1),
    (Participant.status == ParticipantStatus.WAITLISTED.value, 2),
    (Participant.status == ParticipantStatus.REJECTED.value, 3),
    else_=4,
)

_ACTIVE_VALUES = [s.value for s in ACTIVE_STATUSES]


def normalize_contact(contact: str) -> str:
    return contact.strip().lower()


class ParticipantRegistry:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, event_id: int, participant_id: int) -> Participant:
        result = await self.session.execute(
            select(Participant).where(
                Participant.id == participant_id,
                Participant.event_id == event_id,
            )
        )
        participant = result.scalar_one_or_none()
        if participant is None:
            raise ParticipantNotFound(event_id, participant_id=participant_id)
        return participant

    async def find_active_by_identity(self, event_id: int, contact: str) -> Optional[Participant]:
        result = await self.session.execute(
            select(Participant).where(
                Participant.event_id == event_id,
                Participant.email == normalize_contact(contact),
                Participant.status.in_(_ACTIVE_VALUES),
            )
        )
        return result.scalar_one_or_none()

    async def find_latest_by_identity(self, event_id: int, contact: str) -> Optional[Participant]:
        result = await self.session.execute(
            select(Participant)
            .where(
                Participant.event_id == event_id,
                Participant.email == normalize_contact(contact),
            )
            .order_by(Participant.registered_at.desc(), Participant.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def count_by_status(self, event_id: int, status: ParticipantStatus) -> int:
        count = await self.session.scalar(
            select(func.count(Participant.id)).where(
                Participant.event_id == event_id,
                Participant.status == status.value,
            )
        )
        return int(count or 0)

    async def counts_by_status(self, event_id: int) -> dict[str, int]:
        rows = await self.session.execute(
            select(Participant.status, func.count(Participant.id))
            .where(Participant.event_id == event_id)
            .group_by(Participant.status)
        )
        counts = {status.value: 0 for status in ParticipantStatus}
        for status, count in rows.all():
            counts[status] = int(count)
        return counts

    async def list_pending_ordered(self, event_id: int, limit: Optional[int] = None) -> list[Participant]:
        """Pending participants by queue position, then registration time."""
        query = (
            select(Participant)
            .where(
                Participant.event_id == event_id,
                Participant.status == ParticipantStatus.PENDING.value,
            )
            .order_by(
                Participant.queue_position.asc(),
                Participant.registered_at.asc(),
                Participant.id.asc(),
            )
        )
        if limit is not None:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_for_event(self, event_id: int) -> list[Participant]:
        result = await self.session.execute(
            select(Participant)
            .where(Participant.event_id == event_id)
            .order_by(
                STATUS_PRIORITY,
                Participant.queue_position.asc(),
                Participant.registered_at.asc(),
                Participant.id.asc(),
            )
        )
        return list(result.scalars().all())

    async def renumber_pending(self, event_id: int) -> int:
        """Close gaps so Pending positions run 1..N. Returns how many moved."""
        moved = 0
        for position, participant in enumerate(await self.list_pending_ordered(event_id), start=1):
            if participant.queue_position != position:
                participant.queue_position = position
                moved += 1
        if moved:
            await self.session.flush()
            logger.debug("queue_renumbered", event_id=event_id, moved=moved)
        return moved

    async def save(self, participant: Participant) -> Participant:
        """Persist a participant. The partial unique index backs the duplicate check."""
        participant.email = normalize_contact(participant.email)
        self.session.add(participant)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise DuplicateRegistration(participant.event_id, participant.email) from exc
        return participant

    async def delete(self, participant: Participant) -> None:
        await self.session.delete(participant)
        await self.session.flush()
