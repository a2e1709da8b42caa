"""
Domain errors raised by the admission controller and its stores.

Services raise these instead of HTTP errors; app.main maps each category
to a status code. Every error keeps the identifiers a caller needs to
retry or correct the request.
"""

from typing import Any, Optional


class RegistrationError(Exception):
    """Base class for admission errors."""

    code = "registration_error"
    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        event_id: Optional[int] = None,
        participant_id: Optional[int] = None,
        **context: Any,
    ):
        super().__init__(message)
        self.message = message
        self.event_id = event_id
        self.participant_id = participant_id
        self.context = context

    def to_dict(self) -> dict:
        payload = {"detail": self.message, "error": self.code}
        if self.event_id is not None:
            payload["event_id"] = self.event_id
        if self.participant_id is not None:
            payload["participant_id"] = self.participant_id
        payload.update(self.context)
        return payload


# --- NotFound ---

class NotFoundError(RegistrationError):
    code = "not_found"
    status_code = 404


class EventNotFound(NotFoundError):
    code = "event_not_found"

    def __init__(self, event_id: int):
        super().__init__(f"Event {event_id} not found", event_id=event_id)


class ParticipantNotFound(NotFoundError):
    code = "participant_not_found"

    def __init__(self, event_id: int, participant_id: Optional[int] = None, contact: Optional[str] = None):
        if participant_id is not None:
            message = f"Participant {participant_id} not found for event {event_id}"
        else:
            message = f"No registration for {contact} on event {event_id}"
        context = {"contact": contact} if contact else {}
        super().__init__(message, event_id=event_id, participant_id=participant_id, **context)


# --- Conflict ---

class ConflictError(RegistrationError):
    code = "conflict"
    status_code = 409


class DuplicateRegistration(ConflictError):
    code = "duplicate_registration"

    def __init__(self, event_id: int, contact: str, participant_id: Optional[int] = None):
        super().__init__(
            f"{contact} already has an active registration for event {event_id}",
            event_id=event_id,
            participant_id=participant_id,
            contact=contact,
        )


class RegistrationClosed(ConflictError):
    code = "registration_closed"

    def __init__(self, event_id: int, closed_at):
        super().__init__(
            f"Registration for event {event_id} closed at {closed_at.isoformat()}",
            event_id=event_id,
            closed_at=closed_at.isoformat(),
        )


class InvalidTransition(ConflictError):
    code = "invalid_transition"

    def __init__(self, event_id: int, participant_id: int, current: str, action: str):
        super().__init__(
            f"Cannot {action} participant {participant_id}: status is {current}",
            event_id=event_id,
            participant_id=participant_id,
            status=current,
        )


class CapacityBelowOccupancy(ConflictError):
    code = "capacity_below_occupancy"

    def __init__(self, event_id: int, capacity: int, approved_count: int):
        super().__init__(
            f"Capacity {capacity} is below the {approved_count} approved participants of event {event_id}",
            event_id=event_id,
            capacity=capacity,
            approved_count=approved_count,
        )


# --- Capacity ---

class CapacityExceeded(RegistrationError):
    code = "capacity_exceeded"
    status_code = 409

    def __init__(self, event_id: int, capacity: int, participant_id: Optional[int] = None):
        super().__init__(
            f"Event {event_id} has reached its capacity of {capacity}",
            event_id=event_id,
            participant_id=participant_id,
            capacity=capacity,
        )


# --- Internal ---

class InvariantViolation(RegistrationError):
    """approved_count would leave [0, capacity]. Indicates a bug; never clamped."""

    code = "invariant_violation"
    status_code = 500
