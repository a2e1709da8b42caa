"""
Tests for the admission controller: every transition, waitlist ordering,
and behaviour under concurrent calls.
"""

import asyncio
from datetime import datetime, timezone, timedelta

import pytest

from app.core.exceptions import (
    CapacityBelowOccupancy,
    CapacityExceeded,
    DuplicateRegistration,
    EventNotFound,
    InvalidTransition,
    ParticipantNotFound,
    RegistrationClosed,
)
from app.models.participant import ParticipantStatus

APPROVED = ParticipantStatus.APPROVED.value
PENDING = ParticipantStatus.PENDING.value
REJECTED = ParticipantStatus.REJECTED.value
WITHDRAWN = ParticipantStatus.WITHDRAWN.value


async def _register_many(controller, event_id: int, count: int, prefix: str = "guest"):
    participants = []
    for i in range(count):
        participants.append(
            await controller.register(event_id, f"{prefix}{i}@example.com", f"Guest {i}")
        )
    return participants


# --- Register ---

@pytest.mark.asyncio
async def test_register_auto_approves_when_room(controller, small_event, assert_consistent):
    """capacity=1, autoApprove, empty event: the first registration is approved."""
    participant = await controller.register(small_event.id, "alice@example.com", "Alice")

    assert participant.status == APPROVED
    assert participant.queue_position == 0
    event, _ = await assert_consistent(small_event.id)
    assert event.approved_count == 1


@pytest.mark.asyncio
async def test_register_when_full_goes_pending(controller, small_event, assert_consistent):
    await controller.register(small_event.id, "alice@example.com", "Alice")
    second = await controller.register(small_event.id, "bob@example.com", "Bob")

    assert second.status == PENDING
    assert second.queue_position == 1
    await assert_consistent(small_event.id)


@pytest.mark.asyncio
async def test_register_without_auto_approve_goes_pending(controller, moderated_event, assert_consistent):
    first, second = await _register_many(controller, moderated_event.id, 2)

    assert (first.status, first.queue_position) == (PENDING, 1)
    assert (second.status, second.queue_position) == (PENDING, 2)
    event, _ = await assert_consistent(moderated_event.id)
    assert event.approved_count == 0


@pytest.mark.asyncio
async def test_register_normalizes_contact(controller, test_event):
    participant = await controller.register(test_event.id, "  Alice@Example.COM ", "Alice")
    assert participant.email == "alice@example.com"

    with pytest.raises(DuplicateRegistration):
        await controller.register(test_event.id, "alice@example.com", "Alice")


@pytest.mark.asyncio
async def test_register_duplicate_active_conflicts(controller, test_event):
    first = await controller.register(test_event.id, "alice@example.com", "Alice")

    with pytest.raises(DuplicateRegistration) as exc_info:
        await controller.register(test_event.id, "alice@example.com", "Alice")

    error = exc_info.value
    assert error.status_code == 409
    assert error.event_id == test_event.id
    assert error.participant_id == first.id


@pytest.mark.asyncio
async def test_register_after_close_rejected(controller, make_event):
    event = await make_event(closes_at=datetime.now(timezone.utc) - timedelta(hours=1))

    with pytest.raises(RegistrationClosed) as exc_info:
        await controller.register(event.id, "late@example.com", "Late")
    assert exc_info.value.to_dict()["error"] == "registration_closed"


@pytest.mark.asyncio
async def test_register_unknown_event(controller, test_engine):
    with pytest.raises(EventNotFound):
        await controller.register(99999, "alice@example.com", "Alice")


@pytest.mark.asyncio
async def test_register_again_after_reject(controller, test_event, assert_consistent):
    """Rejected and Withdrawn records never block a fresh registration."""
    first = await controller.register(test_event.id, "alice@example.com", "Alice")
    await controller.reject(test_event.id, first.id)

    second = await controller.register(test_event.id, "alice@example.com", "Alice")

    assert second.id != first.id
    assert second.status == APPROVED
    _, participants = await assert_consistent(test_event.id)
    assert sorted(p.status for p in participants) == [APPROVED, REJECTED]


@pytest.mark.asyncio
async def test_register_again_after_withdraw(controller, moderated_event):
    first = await controller.register(moderated_event.id, "alice@example.com", "Alice")
    await controller.withdraw(moderated_event.id, "alice@example.com")

    second = await controller.register(moderated_event.id, "alice@example.com", "Alice")
    assert second.id != first.id
    assert (second.status, second.queue_position) == (PENDING, 1)


# --- Approve ---

@pytest.mark.asyncio
async def test_approve_pending(controller, moderated_event, assert_consistent):
    first, second, third = await _register_many(controller, moderated_event.id, 3)

    approved = await controller.approve(moderated_event.id, second.id)

    assert approved.status == APPROVED
    assert approved.queue_position == 0
    _, participants = await assert_consistent(moderated_event.id)
    positions = {p.id: p.queue_position for p in participants}
    assert positions[first.id] == 1
    assert positions[third.id] == 2


@pytest.mark.asyncio
async def test_approve_at_capacity_fails_and_leaves_state(controller, moderated_event, assert_consistent):
    participants = await _register_many(controller, moderated_event.id, 3)
    await controller.approve(moderated_event.id, participants[0].id)
    await controller.approve(moderated_event.id, participants[1].id)
    before, before_rows = await assert_consistent(moderated_event.id)

    with pytest.raises(CapacityExceeded) as exc_info:
        await controller.approve(moderated_event.id, participants[2].id)

    assert exc_info.value.participant_id == participants[2].id
    after, after_rows = await assert_consistent(moderated_event.id)
    assert after.approved_count == before.approved_count == 2
    assert after.version == before.version
    assert {(p.id, p.status, p.queue_position) for p in after_rows} == {
        (p.id, p.status, p.queue_position) for p in before_rows
    }


@pytest.mark.asyncio
async def test_approve_already_approved_is_noop(controller, test_event, assert_consistent):
    participant = await controller.register(test_event.id, "alice@example.com", "Alice")

    again = await controller.approve(test_event.id, participant.id)

    assert again.status == APPROVED
    event, _ = await assert_consistent(test_event.id)
    assert event.approved_count == 1


@pytest.mark.asyncio
async def test_approve_rejected_is_invalid(controller, moderated_event):
    participant = await controller.register(moderated_event.id, "alice@example.com", "Alice")
    await controller.reject(moderated_event.id, participant.id)

    with pytest.raises(InvalidTransition):
        await controller.approve(moderated_event.id, participant.id)


@pytest.mark.asyncio
async def test_approve_unknown_participant(controller, moderated_event):
    with pytest.raises(ParticipantNotFound):
        await controller.approve(moderated_event.id, 424242)


# --- Reject ---

@pytest.mark.asyncio
async def test_reject_pending_renumbers_queue(controller, moderated_event, assert_consistent):
    first, second, third = await _register_many(controller, moderated_event.id, 3)

    result = await controller.reject(moderated_event.id, first.id)

    assert result.participant.status == REJECTED
    assert result.participant.queue_position == -1
    assert result.promoted is None
    _, participants = await assert_consistent(moderated_event.id)
    positions = {p.id: p.queue_position for p in participants}
    assert positions[second.id] == 1
    assert positions[third.id] == 2


@pytest.mark.asyncio
async def test_reject_approved_promotes_next(controller, small_event, assert_consistent):
    holder = await controller.register(small_event.id, "alice@example.com", "Alice")
    waiting = await controller.register(small_event.id, "bob@example.com", "Bob")

    result = await controller.reject(small_event.id, holder.id)

    assert result.promoted is not None
    assert result.promoted.id == waiting.id
    assert result.promoted.status == APPROVED
    event, _ = await assert_consistent(small_event.id)
    assert event.approved_count == 1


@pytest.mark.asyncio
async def test_reject_twice_is_noop(controller, moderated_event):
    participant = await controller.register(moderated_event.id, "alice@example.com", "Alice")
    await controller.reject(moderated_event.id, participant.id)

    result = await controller.reject(moderated_event.id, participant.id)
    assert result.participant.status == REJECTED
    assert result.promoted is None


@pytest.mark.asyncio
async def test_reject_withdrawn_is_invalid(controller, moderated_event, notifier, dispatcher, assert_consistent):
    """Withdrawn is terminal: rejecting it afterwards changes nothing and sends nothing."""
    participant = await controller.register(moderated_event.id, "alice@example.com", "Alice")
    await controller.withdraw(moderated_event.id, "alice@example.com")

    with pytest.raises(InvalidTransition):
        await controller.reject(moderated_event.id, participant.id)

    await dispatcher.drain()
    assert notifier.outcomes_for("alice@example.com") == ["waitlisted", "withdrawn"]
    _, participants = await assert_consistent(moderated_event.id)
    assert [p.status for p in participants] == [WITHDRAWN]


# --- Withdraw ---

@pytest.mark.asyncio
async def test_withdraw_sole_approved_promotes_waitlisted(controller, small_event, assert_consistent):
    """The freed seat goes to the only Pending participant; no Pending remain."""
    await controller.register(small_event.id, "alice@example.com", "Alice")
    waiting = await controller.register(small_event.id, "bob@example.com", "Bob")

    result = await controller.withdraw(small_event.id, "alice@example.com")

    assert result.participant.status == WITHDRAWN
    assert result.promoted.id == waiting.id
    event, participants = await assert_consistent(small_event.id)
    assert event.approved_count == 1
    assert not [p for p in participants if p.status == PENDING]


@pytest.mark.asyncio
async def test_withdraw_pending_keeps_occupancy(controller, small_event, assert_consistent):
    await controller.register(small_event.id, "alice@example.com", "Alice")
    await controller.register(small_event.id, "bob@example.com", "Bob")
    carol = await controller.register(small_event.id, "carol@example.com", "Carol")

    result = await controller.withdraw(small_event.id, "bob@example.com")

    assert result.promoted is None
    event, participants = await assert_consistent(small_event.id)
    assert event.approved_count == 1
    assert {p.id: p.queue_position for p in participants}[carol.id] == 1


@pytest.mark.asyncio
async def test_withdraw_twice_is_noop(controller, test_event):
    await controller.register(test_event.id, "alice@example.com", "Alice")
    await controller.withdraw(test_event.id, "alice@example.com")

    result = await controller.withdraw(test_event.id, "alice@example.com")
    assert result.participant.status == WITHDRAWN


@pytest.mark.asyncio
async def test_withdraw_without_registration(controller, test_event):
    with pytest.raises(ParticipantNotFound):
        await controller.withdraw(test_event.id, "nobody@example.com")


@pytest.mark.asyncio
async def test_withdraw_after_reject_not_found(controller, moderated_event):
    participant = await controller.register(moderated_event.id, "alice@example.com", "Alice")
    await controller.reject(moderated_event.id, participant.id)

    with pytest.raises(ParticipantNotFound):
        await controller.withdraw(moderated_event.id, "alice@example.com")


# --- Update registration ---

@pytest.mark.asyncio
async def test_update_registration_renames(controller, small_event, assert_consistent):
    holder = await controller.register(small_event.id, "alice@example.com", "Alice")
    waiting = await controller.register(small_event.id, "bob@example.com", "Bob")

    updated = await controller.update_registration(small_event.id, "Bob@Example.com", "Robert")

    assert updated.id == waiting.id
    assert updated.name == "Robert"
    assert updated.email == "bob@example.com"
    _, participants = await assert_consistent(small_event.id)
    by_id = {p.id: p for p in participants}
    assert by_id[waiting.id].name == "Robert"
    assert by_id[waiting.id].queue_position == 1
    assert by_id[holder.id].name == "Alice"


@pytest.mark.asyncio
async def test_update_registration_requires_active_record(controller, test_event):
    await controller.register(test_event.id, "alice@example.com", "Alice")
    await controller.withdraw(test_event.id, "alice@example.com")

    with pytest.raises(ParticipantNotFound):
        await controller.update_registration(test_event.id, "alice@example.com", "Alicia")


# --- Remove ---

@pytest.mark.asyncio
async def test_remove_approved_promotes(controller, small_event, assert_consistent):
    holder = await controller.register(small_event.id, "alice@example.com", "Alice")
    waiting = await controller.register(small_event.id, "bob@example.com", "Bob")

    result = await controller.remove(small_event.id, holder.id)

    assert result.promoted.id == waiting.id
    _, participants = await assert_consistent(small_event.id)
    assert [p.id for p in participants] == [waiting.id]


@pytest.mark.asyncio
async def test_remove_pending_renumbers(controller, moderated_event, assert_consistent):
    first, second, third = await _register_many(controller, moderated_event.id, 3)

    result = await controller.remove(moderated_event.id, second.id)

    assert result.promoted is None
    _, participants = await assert_consistent(moderated_event.id)
    assert {p.id: p.queue_position for p in participants} == {first.id: 1, third.id: 2}


@pytest.mark.asyncio
async def test_remove_unknown_participant(controller, test_event):
    with pytest.raises(ParticipantNotFound):
        await controller.remove(test_event.id, 424242)


# --- Promote-next and policy ---

@pytest.mark.asyncio
async def test_promote_next_ignores_auto_approve(controller, moderated_event, assert_consistent):
    first, second = await _register_many(controller, moderated_event.id, 2)

    promoted = await controller.promote_next(moderated_event.id)

    assert promoted.id == first.id
    _, participants = await assert_consistent(moderated_event.id)
    assert {p.id: p.queue_position for p in participants}[second.id] == 1


@pytest.mark.asyncio
async def test_promote_next_empty_queue(controller, test_event):
    assert await controller.promote_next(test_event.id) is None


@pytest.mark.asyncio
async def test_toggle_auto_approve_does_not_promote(controller, moderated_event, assert_consistent):
    await _register_many(controller, moderated_event.id, 2)

    event = await controller.toggle_auto_approve(moderated_event.id)

    assert event.auto_approve is True
    checked, _ = await assert_consistent(moderated_event.id)
    assert checked.approved_count == 0

    event = await controller.toggle_auto_approve(moderated_event.id)
    assert event.auto_approve is False


@pytest.mark.asyncio
async def test_raise_capacity_promotes_waitlist(controller, small_event, assert_consistent):
    await _register_many(controller, small_event.id, 4)

    change = await controller.update_policy(small_event.id, capacity=3)

    assert len(change.promoted) == 2
    assert change.event.capacity == 3
    event, participants = await assert_consistent(small_event.id)
    assert event.approved_count == 3
    assert [p.queue_position for p in participants if p.status == PENDING] == [1]


@pytest.mark.asyncio
async def test_capacity_below_occupancy_refused(controller, test_event):
    await _register_many(controller, test_event.id, 2)

    with pytest.raises(CapacityBelowOccupancy):
        await controller.update_policy(test_event.id, capacity=1)


# --- Concurrency ---

@pytest.mark.asyncio
async def test_concurrent_registers_for_last_seat(controller, small_event, assert_consistent):
    """Exactly one of two simultaneous registrations gets the seat."""
    first, second = await asyncio.gather(
        controller.register(small_event.id, "alice@example.com", "Alice"),
        controller.register(small_event.id, "bob@example.com", "Bob"),
    )

    statuses = sorted([(first.status, first.queue_position), (second.status, second.queue_position)])
    assert statuses == [(APPROVED, 0), (PENDING, 1)]
    await assert_consistent(small_event.id)


@pytest.mark.asyncio
async def test_concurrent_registers_never_overbook(controller, make_event, assert_consistent):
    event = await make_event(capacity=5, auto_approve=True)

    results = await asyncio.gather(
        *(controller.register(event.id, f"guest{i}@example.com", f"Guest {i}") for i in range(20))
    )

    assert sum(1 for p in results if p.status == APPROVED) == 5
    assert sorted(p.queue_position for p in results if p.status == PENDING) == list(range(1, 16))
    await assert_consistent(event.id)


@pytest.mark.asyncio
async def test_concurrent_duplicate_registers(controller, test_event, assert_consistent):
    """Only one of several simultaneous registrations for one contact succeeds."""
    results = await asyncio.gather(
        *(controller.register(test_event.id, "alice@example.com", "Alice") for _ in range(5)),
        return_exceptions=True,
    )

    successes = [r for r in results if not isinstance(r, Exception)]
    failures = [r for r in results if isinstance(r, Exception)]
    assert len(successes) == 1
    assert len(failures) == 4
    assert all(isinstance(f, DuplicateRegistration) for f in failures)
    await assert_consistent(test_event.id)


@pytest.mark.asyncio
async def test_concurrent_mixed_transitions_keep_invariants(controller, make_event, assert_consistent):
    event = await make_event(capacity=3, auto_approve=True)
    participants = await _register_many(controller, event.id, 6)

    results = await asyncio.gather(
        controller.withdraw(event.id, participants[0].email),
        controller.reject(event.id, participants[1].id),
        controller.approve(event.id, participants[4].id),
        controller.register(event.id, "late@example.com", "Late"),
        controller.remove(event.id, participants[3].id),
        return_exceptions=True,
    )

    for result in results:
        if isinstance(result, Exception):
            assert isinstance(result, CapacityExceeded)
    await assert_consistent(event.id)


@pytest.mark.asyncio
async def test_lock_released_after_operations(controller, test_event):
    await asyncio.gather(
        *(controller.register(test_event.id, f"guest{i}@example.com", f"Guest {i}") for i in range(5))
    )
    assert len(controller.locks) == 0
