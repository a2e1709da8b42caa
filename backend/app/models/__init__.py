from app.models.user import User
from app.models.event import Event
from app.models.participant import Participant, ParticipantStatus

__all__ = ["User", "Event", "Participant", "ParticipantStatus"]
