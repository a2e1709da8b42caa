"""
Registration and participant administration endpoints.

Registration requires an authenticated account: the contact email and
display name come from the verified identity, never from the request body.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_admission_controller, get_current_user, get_managed_event
from app.core.config import get_settings
from app.db.session import get_db
from app.models.event import Event
from app.models.participant import ParticipantStatus
from app.models.user import User
from app.schemas.event import EventResponse
from app.schemas.participant import (
    ContactOrganizerRequest,
    NotificationDispatchResponse,
    NotificationRequest,
    ParticipantListResponse,
    ParticipantResponse,
    RegistrationCreate,
    RegistrationResponse,
    RegistrationUpdate,
    RemovalResponse,
    TransitionResponse,
    UserRegistrationResponse,
)
from app.services.admission_service import AdmissionController, TransitionResult
from app.services.auth_service import get_user
from app.services.cache_service import invalidate_event_cache
from app.services.event_service import get_event
from app.services.interfaces.notifier import Notification, OutcomeKind
from app.services.reporting_service import (
    list_participants,
    list_participants_for_notification,
    list_user_registrations,
)
from app.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/events", tags=["Participants"])
registrations_router = APIRouter(prefix="/registrations", tags=["Registrations"])


def _transition_response(result: TransitionResult) -> TransitionResponse:
    return TransitionResponse(
        participant=ParticipantResponse.model_validate(result.participant),
        promoted=ParticipantResponse.model_validate(result.promoted) if result.promoted else None,
    )


@router.post("/{event_id}/register", response_model=RegistrationResponse, status_code=status.HTTP_201_CREATED)
async def register_for_event(
    event_id: int,
    registration: Optional[RegistrationCreate] = None,
    user: User = Depends(get_current_user),
    controller: AdmissionController = Depends(get_admission_controller),
):
    """
    Register the caller for an event.

    Approved immediately when the event auto-approves and has room,
    otherwise queued as pending with a waitlist position.
    """
    participant = await controller.register(
        event_id,
        contact=user.email,
        name=(registration.name if registration else None) or user.display_name,
        user_id=user.id,
    )
    await invalidate_event_cache()
    approved = participant.status == ParticipantStatus.APPROVED.value
    return RegistrationResponse(
        message=(
            "You have been successfully registered for this event"
            if approved
            else f"Your registration is pending (position {participant.queue_position})"
        ),
        participant=ParticipantResponse.model_validate(participant),
    )


@router.post("/{event_id}/withdraw", response_model=TransitionResponse)
async def withdraw_from_event(
    event_id: int,
    user: User = Depends(get_current_user),
    controller: AdmissionController = Depends(get_admission_controller),
):
    """Withdraw the caller's active registration; a freed seat goes to the next in line."""
    result = await controller.withdraw(event_id, user.email)
    await invalidate_event_cache()
    return _transition_response(result)


@router.patch("/{event_id}/registration", response_model=ParticipantResponse)
async def update_my_registration(
    event_id: int,
    update: RegistrationUpdate,
    user: User = Depends(get_current_user),
    controller: AdmissionController = Depends(get_admission_controller),
):
    """Change the display name on the caller's active registration."""
    participant = await controller.update_registration(event_id, user.email, update.name)
    return ParticipantResponse.model_validate(participant)


@router.get("/{event_id}/participants", response_model=ParticipantListResponse)
async def list_event_participants(
    event: Event = Depends(get_managed_event),
    db: AsyncSession = Depends(get_db),
):
    event, participants, counts = await list_participants(db, event.id)
    return ParticipantListResponse(
        event=EventResponse.model_validate(event),
        participants=[ParticipantResponse.model_validate(p) for p in participants],
        counts=counts,
    )


@router.post("/{event_id}/participants/{participant_id}/approve", response_model=TransitionResponse)
async def approve_participant(
    participant_id: int,
    event: Event = Depends(get_managed_event),
    controller: AdmissionController = Depends(get_admission_controller),
):
    participant = await controller.approve(event.id, participant_id)
    await invalidate_event_cache()
    return TransitionResponse(participant=ParticipantResponse.model_validate(participant))


@router.post("/{event_id}/participants/{participant_id}/reject", response_model=TransitionResponse)
async def reject_participant(
    participant_id: int,
    event: Event = Depends(get_managed_event),
    controller: AdmissionController = Depends(get_admission_controller),
):
    result = await controller.reject(event.id, participant_id)
    await invalidate_event_cache()
    return _transition_response(result)


@router.delete("/{event_id}/participants/{participant_id}", response_model=RemovalResponse)
async def remove_participant(
    participant_id: int,
    event: Event = Depends(get_managed_event),
    controller: AdmissionController = Depends(get_admission_controller),
):
    result = await controller.remove(event.id, participant_id)
    await invalidate_event_cache()
    return RemovalResponse(
        message=(
            "Participant removed and next in line approved"
            if result.promoted
            else "Participant removed successfully"
        ),
        participant_id=participant_id,
        promoted=ParticipantResponse.model_validate(result.promoted) if result.promoted else None,
    )


@router.post("/{event_id}/notifications", response_model=NotificationDispatchResponse)
async def notify_participants(
    payload: NotificationRequest,
    event: Event = Depends(get_managed_event),
    db: AsyncSession = Depends(get_db),
    controller: AdmissionController = Depends(get_admission_controller),
):
    """Send a custom message to the event's participants, optionally filtered."""
    participants = await list_participants_for_notification(
        db, event.id, status=payload.status, participant_ids=payload.participant_ids
    )
    if not participants:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No participants found matching the criteria",
        )

    scheduled = controller.dispatcher.dispatch(
        Notification(
            contact=p.email,
            name=p.name,
            event_title=event.title,
            event_id=event.id,
            outcome=OutcomeKind.CUSTOM,
            message=payload.message,
        )
        for p in participants
    )
    logger.info("custom_notification_sent", event_id=event.id, recipients=scheduled)
    return NotificationDispatchResponse(message="Notifications scheduled", recipients=scheduled)


@router.post("/{event_id}/contact", response_model=NotificationDispatchResponse)
async def contact_organizers(
    event_id: int,
    payload: ContactOrganizerRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    controller: AdmissionController = Depends(get_admission_controller),
):
    """Forward a participant's message to the event owner and the configured organizers."""
    event = await get_event(db, event_id)
    recipients = {email.lower() for email in get_settings().ORGANIZER_EMAILS}
    owner = await get_user(db, event.organizer_id)
    if owner is not None:
        recipients.add(owner.email)

    body = f"Message from {user.display_name} <{user.email}>\nSubject: {payload.subject}\n\n{payload.message}"
    scheduled = controller.dispatcher.dispatch(
        Notification(
            contact=recipient,
            event_title=event.title,
            event_id=event.id,
            outcome=OutcomeKind.ORGANIZER_CONTACT,
            message=body,
        )
        for recipient in sorted(recipients)
    )
    return NotificationDispatchResponse(message="Your message has been sent to the organizers", recipients=scheduled)


@registrations_router.get("/me", response_model=list[UserRegistrationResponse])
async def my_registrations(
    active_only: bool = Query(False),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The caller's registrations across events, newest first."""
    participants = await list_user_registrations(db, user.id, user.email, active_only=active_only)
    return [
        UserRegistrationResponse(
            participant=ParticipantResponse.model_validate(p),
            event=EventResponse.model_validate(p.event),
        )
        for p in participants
    ]
