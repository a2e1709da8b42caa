from app.schemas.user import UserCreate, UserResponse, UserLogin, Token
from app.schemas.event import EventCreate, EventUpdate, EventResponse, EventListResponse, OccupancyResponse
from app.schemas.participant import (
    RegistrationCreate,
    ParticipantResponse,
    RegistrationResponse,
    TransitionResponse,
    ParticipantListResponse,
)

__all__ = [
    "UserCreate", "UserResponse", "UserLogin", "Token",
    "EventCreate", "EventUpdate", "EventResponse", "EventListResponse", "OccupancyResponse",
    "RegistrationCreate", "ParticipantResponse", "RegistrationResponse",
    "TransitionResponse", "ParticipantListResponse",
]
