"""
Event ledger: capacity, approved occupancy and auto-approval policy.

The ledger is always used inside an admission critical section, after
`lock_event` has taken the event row lock. Counter changes go through a
guarded UPDATE (WHERE approved_count + delta <= capacity) so the database
refuses an occupancy above capacity even if the caller's snapshot was wrong.
"""

from dataclasses import dataclass

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import CapacityBelowOccupancy, EventNotFound, InvariantViolation
from app.core.logging import get_logger
from app.models.event import Event

logger = get_logger(__name__)


@dataclass(frozen=True)
class CapacityState:
    capacity: int
    approved_count: int
    auto_approve: bool

    @property
    def has_room(self) -> bool:
        return self.approved_count < self.capacity


class EventLedger:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def lock_event(self, event_id: int) -> Event:
        """Load the event with a row lock (FOR UPDATE; a no-op on SQLite)."""
        result = await self.session.execute(
            select(Event)
            .where(Event.id == event_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        event = result.scalar_one_or_none()
        if event is None:
            raise EventNotFound(event_id)
        return event

    async def get_capacity_state(self, event_id: int) -> CapacityState:
        row = (
            await self.session.execute(
                select(Event.capacity, Event.approved_count, Event.auto_approve).where(Event.id == event_id)
            )
        ).one_or_none()
        if row is None:
            raise EventNotFound(event_id)
        return CapacityState(capacity=row.capacity, approved_count=row.approved_count, auto_approve=row.auto_approve)

    async def adjust_approved_count(self, event: Event, delta: int) -> int:
        """
        Apply `delta` to the approved occupancy and return the new value.

        Increments never exceed capacity: a refused increment raises
        InvariantViolation. Decrements are floored at 0.
        """
        if delta == 0:
            return event.approved_count

        new_value = Event.approved_count + delta
        stmt = update(Event).where(Event.id == event.id)
        if delta > 0:
            stmt = stmt.where(new_value <= Event.capacity).values(
                approved_count=new_value,
                version=Event.version + 1,
            )
        else:
            if event.approved_count + delta < 0:
                logger.warning(
                    "approved_count_clamped",
                    event_id=event.id,
                    approved_count=event.approved_count,
                    delta=delta,
                )
            stmt = stmt.values(
                approved_count=case((new_value < 0, 0), else_=new_value),
                version=Event.version + 1,
            )

        result = await self.session.execute(stmt.execution_options(synchronize_session=False))
        if result.rowcount != 1:
            logger.error(
                "approved_count_overflow",
                event_id=event.id,
                approved_count=event.approved_count,
                capacity=event.capacity,
                delta=delta,
            )
            raise InvariantViolation(
                f"approved_count of event {event.id} would exceed capacity {event.capacity}",
                event_id=event.id,
                approved_count=event.approved_count,
                delta=delta,
            )

        await self.session.refresh(event, attribute_names=["approved_count", "version"])
        return event.approved_count

    async def set_auto_approve(self, event: Event, enabled: bool) -> Event:
        if event.auto_approve != enabled:
            event.auto_approve = enabled
            event.version += 1
            await self.session.flush()
            logger.info("auto_approve_changed", event_id=event.id, auto_approve=enabled)
        return event

    async def set_capacity(self, event: Event, capacity: int) -> Event:
        if capacity < event.approved_count:
            raise CapacityBelowOccupancy(event.id, capacity, event.approved_count)
        if event.capacity != capacity:
            logger.info("capacity_changed", event_id=event.id, old=event.capacity, new=capacity)
            event.capacity = capacity
            event.version += 1
            await self.session.flush()
        return event
