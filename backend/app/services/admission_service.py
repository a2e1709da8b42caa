"""
Admission controller: registration, approval, rejection, withdrawal and
removal of participants, with automatic promotion from the waitlist.

CONCURRENCY STRATEGY: Per-Event Critical Section
================================================

Problem:
  Two registrations for the last seat (or a withdrawal racing an approval)
  both read approved_count, both decide, both write. Result: occupancy
  above capacity, or a counter that no longer matches the participant
  rows, or two Pending records sharing a queue position.

Solution:
  Every operation runs as one unit scoped to a single event:

  1. Acquire the in-process lock for the event id (EventLockManager)
  2. Open a transaction and read the event row FOR UPDATE
     (serializes writers across processes on PostgreSQL)
  3. read counts -> decide -> write counter -> write participant -> renumber
  4. Commit, then release the lock
  5. Dispatch the collected notifications (fire-and-forget)

  The counter update itself is guarded (see EventLedger), so even a wrong
  decision cannot push approved_count past capacity; it fails loudly with
  InvariantViolation instead.

  Events never share state, so operations on different events run fully in
  parallel.

Waitlist ordering:
  Pending participants carry queue positions 1..N in registration order.
  Every transition that removes someone from the queue (approve, reject,
  withdraw, remove, promotion) renumbers the remaining Pending records in
  the same transaction, so the queue is contiguous after every commit.
"""

import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import (
    CapacityExceeded,
    DuplicateRegistration,
    InvalidTransition,
    ParticipantNotFound,
    RegistrationClosed,
    RegistrationError,
)
from app.core.logging import get_logger
from app.core.metrics import admission_latency, capacity_rejections, record_registration, record_transition
from app.core.time_utils import to_utc, utcnow
from app.models.event import Event
from app.models.participant import (
    APPROVED_POSITION,
    TERMINAL_POSITION,
    Participant,
    ParticipantStatus,
)
from app.services.event_ledger import EventLedger
from app.services.interfaces.notifier import Notification, OutcomeKind
from app.services.locks import EventLockManager
from app.services.notification_service import NotificationDispatcher
from app.services.participant_registry import ParticipantRegistry, normalize_contact

logger = get_logger(__name__)


@dataclass
class TransitionResult:
    participant: Participant
    promoted: Optional[Participant] = None


@dataclass
class PolicyChange:
    event: Event
    promoted: list[Participant] = field(default_factory=list)


@dataclass
class _Unit:
    """State of one critical section."""

    session: AsyncSession
    event: Event
    ledger: EventLedger
    registry: ParticipantRegistry
    notifications: list[Notification] = field(default_factory=list)

    def notify(self, participant: Participant, outcome: OutcomeKind) -> None:
        self.notifications.append(
            Notification(
                contact=participant.email,
                name=participant.name,
                event_title=self.event.title,
                event_id=self.event.id,
                outcome=outcome,
            )
        )


class AdmissionController:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: NotificationDispatcher,
        locks: Optional[EventLockManager] = None,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.locks = locks or EventLockManager()

    @asynccontextmanager
    async def _critical_section(self, event_id: int, operation: str) -> AsyncIterator[_Unit]:
        started = time.perf_counter()
        async with self.locks.hold(event_id):
            async with self.session_factory() as session:
                async with session.begin():
                    ledger = EventLedger(session)
                    event = await ledger.lock_event(event_id)
                    unit = _Unit(
                        session=session,
                        event=event,
                        ledger=ledger,
                        registry=ParticipantRegistry(session),
                    )
                    yield unit
            admission_latency.labels(operation=operation).observe(time.perf_counter() - started)
        # Committed and unlocked: notifications may go out now
        self.dispatcher.dispatch(unit.notifications)

    # --- operations ---

    async def register(
        self,
        event_id: int,
        contact: str,
        name: str,
        user_id: Optional[int] = None,
    ) -> Participant:
        """
        Register `contact` for an event.

        Admitted immediately when the event auto-approves and has room;
        otherwise queued as Pending at the end of the waitlist.
        """
        contact = normalize_contact(contact)
        try:
            async with self._critical_section(event_id, "register") as unit:
                event = unit.event
                now = utcnow()
                closes_at = to_utc(event.registration_closes_at)
                if now > closes_at:
                    raise RegistrationClosed(event_id, closes_at)

                existing = await unit.registry.find_active_by_identity(event_id, contact)
                if existing is not None:
                    raise DuplicateRegistration(event_id, contact, participant_id=existing.id)

                state = await unit.ledger.get_capacity_state(event_id)
                participant = Participant(
                    event_id=event_id,
                    user_id=user_id,
                    name=name,
                    email=contact,
                    registered_at=now,
                )
                if state.auto_approve and state.has_room:
                    await unit.ledger.adjust_approved_count(event, +1)
                    participant.status = ParticipantStatus.APPROVED.value
                    participant.queue_position = APPROVED_POSITION
                else:
                    pending = await unit.registry.count_by_status(event_id, ParticipantStatus.PENDING)
                    participant.status = ParticipantStatus.PENDING.value
                    participant.queue_position = pending + 1

                await unit.registry.save(participant)
                approved = participant.status == ParticipantStatus.APPROVED.value
                unit.notify(participant, OutcomeKind.REGISTERED if approved else OutcomeKind.WAITLISTED)
        except RegistrationError as exc:
            record_registration(exc.code)
            raise

        record_registration(participant.status)
        logger.info(
            "participant_registered",
            event_id=event_id,
            participant_id=participant.id,
            status=participant.status,
            queue_position=participant.queue_position,
        )
        return participant

    async def approve(self, event_id: int, participant_id: int) -> Participant:
        """Administrative approval. Fails with CapacityExceeded when the event is full."""
        async with self._critical_section(event_id, "approve") as unit:
            participant = await unit.registry.get(event_id, participant_id)
            status = participant.status_enum
            if status is ParticipantStatus.APPROVED:
                return participant
            if status.is_terminal:
                raise InvalidTransition(event_id, participant_id, status.value, "approve")

            state = await unit.ledger.get_capacity_state(event_id)
            if not state.has_room:
                capacity_rejections.inc()
                logger.warning(
                    "approval_refused_capacity",
                    event_id=event_id,
                    participant_id=participant_id,
                    capacity=state.capacity,
                )
                raise CapacityExceeded(event_id, state.capacity, participant_id=participant_id)

            await unit.ledger.adjust_approved_count(unit.event, +1)
            participant.status = ParticipantStatus.APPROVED.value
            participant.queue_position = APPROVED_POSITION
            await unit.registry.renumber_pending(event_id)
            unit.notify(participant, OutcomeKind.APPROVED)

        record_transition("approve")
        logger.info("participant_approved", event_id=event_id, participant_id=participant_id)
        return participant

    async def reject(self, event_id: int, participant_id: int) -> TransitionResult:
        """Administrative rejection. Frees the seat of an Approved participant."""
        async with self._critical_section(event_id, "reject") as unit:
            participant = await unit.registry.get(event_id, participant_id)
            status = participant.status_enum
            if status is ParticipantStatus.REJECTED:
                return TransitionResult(participant)
            if status is ParticipantStatus.WITHDRAWN:
                raise InvalidTransition(event_id, participant_id, status.value, "reject")

            promoted = await self._leave(unit, participant, ParticipantStatus.REJECTED)
            unit.notify(participant, OutcomeKind.REJECTED)

        record_transition("reject")
        logger.info(
            "participant_rejected",
            event_id=event_id,
            participant_id=participant_id,
            promoted_id=promoted.id if promoted else None,
        )
        return TransitionResult(participant, promoted)

    async def withdraw(self, event_id: int, contact: str) -> TransitionResult:
        """Participant-initiated cancellation of their active registration."""
        contact = normalize_contact(contact)
        async with self._critical_section(event_id, "withdraw") as unit:
            participant = await unit.registry.find_active_by_identity(event_id, contact)
            if participant is None:
                latest = await unit.registry.find_latest_by_identity(event_id, contact)
                if latest is not None and latest.status_enum is ParticipantStatus.WITHDRAWN:
                    return TransitionResult(latest)
                raise ParticipantNotFound(event_id, contact=contact)

            promoted = await self._leave(unit, participant, ParticipantStatus.WITHDRAWN)
            unit.notify(participant, OutcomeKind.WITHDRAWN)

        record_transition("withdraw")
        logger.info(
            "participant_withdrawn",
            event_id=event_id,
            participant_id=participant.id,
            promoted_id=promoted.id if promoted else None,
        )
        return TransitionResult(participant, promoted)

    async def remove(self, event_id: int, participant_id: int) -> TransitionResult:
        """Administrative hard delete; same seat accounting as withdraw."""
        async with self._critical_section(event_id, "remove") as unit:
            participant = await unit.registry.get(event_id, participant_id)
            was_approved = participant.status_enum is ParticipantStatus.APPROVED
            was_pending = participant.status_enum is ParticipantStatus.PENDING

            await unit.registry.delete(participant)
            promoted = None
            if was_approved:
                await unit.ledger.adjust_approved_count(unit.event, -1)
                promoted = await self._promote_next(unit)
            if was_pending:
                await unit.registry.renumber_pending(event_id)
            unit.notify(participant, OutcomeKind.REMOVED)

        record_transition("remove")
        logger.info(
            "participant_removed",
            event_id=event_id,
            participant_id=participant_id,
            was_approved=was_approved,
            promoted_id=promoted.id if promoted else None,
        )
        return TransitionResult(participant, promoted)

    async def update_registration(self, event_id: int, contact: str, name: str) -> Participant:
        """Edit the display name on the caller's active registration. The contact stays fixed."""
        contact = normalize_contact(contact)
        async with self._critical_section(event_id, "update_registration") as unit:
            participant = await unit.registry.find_active_by_identity(event_id, contact)
            if participant is None:
                raise ParticipantNotFound(event_id, contact=contact)
            participant.name = name

        logger.info("registration_updated", event_id=event_id, participant_id=participant.id)
        return participant

    async def promote_next(self, event_id: int) -> Optional[Participant]:
        """Fill one free seat from the head of the waitlist, if any."""
        async with self._critical_section(event_id, "promote") as unit:
            return await self._promote_next(unit)

    async def toggle_auto_approve(self, event_id: int) -> Event:
        async with self._critical_section(event_id, "toggle_auto_approve") as unit:
            await unit.ledger.set_auto_approve(unit.event, not unit.event.auto_approve)
        return unit.event

    async def update_policy(
        self,
        event_id: int,
        capacity: Optional[int] = None,
        auto_approve: Optional[bool] = None,
    ) -> PolicyChange:
        """
        Organizer edit of capacity and/or auto-approval.

        Capacity may not drop below the approved count. Added seats are filled
        from the waitlist straight away.
        """
        async with self._critical_section(event_id, "update_policy") as unit:
            change = PolicyChange(unit.event)
            if auto_approve is not None:
                await unit.ledger.set_auto_approve(unit.event, auto_approve)
            if capacity is not None:
                await unit.ledger.set_capacity(unit.event, capacity)
                while unit.event.approved_count < unit.event.capacity:
                    promoted = await self._promote_next(unit)
                    if promoted is None:
                        break
                    change.promoted.append(promoted)
        return change

    # --- internal primitives; callers hold the critical section ---

    async def _leave(self, unit: _Unit, participant: Participant, status: ParticipantStatus) -> Optional[Participant]:
        """Move a participant to a terminal status, refilling a freed seat."""
        was_approved = participant.status_enum is ParticipantStatus.APPROVED
        participant.status = status.value
        participant.queue_position = TERMINAL_POSITION
        promoted = None
        if was_approved:
            await unit.ledger.adjust_approved_count(unit.event, -1)
            promoted = await self._promote_next(unit)
        await unit.registry.renumber_pending(unit.event.id)
        return promoted

    async def _promote_next(self, unit: _Unit) -> Optional[Participant]:
        event = unit.event
        state = await unit.ledger.get_capacity_state(event.id)
        if not state.has_room:
            return None

        head = await unit.registry.list_pending_ordered(event.id, limit=1)
        if not head:
            logger.debug("promotion_skipped", event_id=event.id, reason="queue_empty")
            return None

        participant = head[0]
        await unit.ledger.adjust_approved_count(event, +1)
        participant.status = ParticipantStatus.APPROVED.value
        participant.queue_position = APPROVED_POSITION
        # Close the gap immediately so the queue stays contiguous
        await unit.registry.renumber_pending(event.id)
        unit.notify(participant, OutcomeKind.PROMOTED)

        record_transition("promote")
        logger.info("participant_promoted", event_id=event.id, participant_id=participant.id)
        return participant
