"""
Pydantic schemas for registrations and participant administration.
"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field

from app.schemas.event import EventResponse

ParticipantStatusName = Literal["pending", "approved", "rejected", "waitlisted", "withdrawn"]


class RegistrationCreate(BaseModel):
    # Display name override; contact email always comes from the account
    name: Optional[str] = Field(None, min_length=1, max_length=255)


class RegistrationUpdate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class ParticipantResponse(BaseModel):
    id: int
    event_id: int
    user_id: Optional[int]
    name: str
    email: str
    status: str
    queue_position: int
    registered_at: datetime

    model_config = {"from_attributes": True}


class RegistrationResponse(BaseModel):
    message: str
    participant: ParticipantResponse


class TransitionResponse(BaseModel):
    participant: ParticipantResponse
    promoted: Optional[ParticipantResponse] = None


class RemovalResponse(BaseModel):
    message: str
    participant_id: int
    promoted: Optional[ParticipantResponse] = None


class ParticipantListResponse(BaseModel):
    event: EventResponse
    participants: list[ParticipantResponse]
    counts: dict[str, int]


class UserRegistrationResponse(BaseModel):
    participant: ParticipantResponse
    event: EventResponse


class NotificationRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=5000)
    status: Optional[ParticipantStatusName] = None
    participant_ids: list[int] = []


class NotificationDispatchResponse(BaseModel):
    message: str
    recipients: int


class ContactOrganizerRequest(BaseModel):
    subject: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1, max_length=5000)
