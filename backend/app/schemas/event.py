"""
Pydantic schemas for event-related request/response validation.
"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field, model_validator

EventStatus = Literal["upcoming", "ongoing", "completed", "cancelled"]


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    category: Optional[str] = Field(None, max_length=100)
    date: datetime
    location: Optional[str] = Field(None, max_length=255)
    registration_closes_at: Optional[datetime] = None
    capacity: int = Field(50, gt=0, le=100000)
    auto_approve: bool = False

    @model_validator(mode="after")
    def _closes_before_start(self):
        if self.registration_closes_at is None:
            self.registration_closes_at = self.date
        elif self.registration_closes_at > self.date:
            raise ValueError("registration_closes_at must not be after the event date")
        return self


class EventUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    category: Optional[str] = Field(None, max_length=100)
    date: Optional[datetime] = None
    location: Optional[str] = Field(None, max_length=255)
    status: Optional[EventStatus] = None
    registration_closes_at: Optional[datetime] = None
    capacity: Optional[int] = Field(None, gt=0, le=100000)
    auto_approve: Optional[bool] = None


class EventResponse(BaseModel):
    id: int
    title: str
    description: Optional[str]
    category: Optional[str]
    date: datetime
    location: Optional[str]
    status: str
    registration_closes_at: datetime
    capacity: int
    approved_count: int
    auto_approve: bool
    organizer_id: int
    created_at: datetime

    model_config = {"from_attributes": True}


class EventListResponse(BaseModel):
    events: list[EventResponse]
    total: int
    page: int
    page_size: int
    cached: bool = False


class AutoApproveToggleResponse(BaseModel):
    event: EventResponse
    message: str


class OccupancyResponse(BaseModel):
    event_id: int
    capacity: int
    approved_count: int
    pending_count: int
    available: int
    percentage: float
    auto_approve: bool
