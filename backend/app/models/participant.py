"""
Participant model: one registration of a contact for one event.

Key design decisions:
- `queue_position` is 1..N among Pending participants of an event, 0 for
  Approved, -1 for terminal records
- A partial unique index allows a single non-terminal record per
  (event, email); terminal records are kept as history so the same contact
  may register again
"""

import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, CheckConstraint, text
from sqlalchemy.orm import relationship

from app.db.base import Base, TimestampMixin


class ParticipantStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    WAITLISTED = "waitlisted"
    WITHDRAWN = "withdrawn"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({ParticipantStatus.REJECTED, ParticipantStatus.WITHDRAWN})
ACTIVE_STATUSES = frozenset(
    {ParticipantStatus.PENDING, ParticipantStatus.APPROVED, ParticipantStatus.WAITLISTED}
)

APPROVED_POSITION = 0
TERMINAL_POSITION = -1

_ACTIVE_SQL = text("status IN ('pending', 'approved', 'waitlisted')")


class Participant(Base, TimestampMixin):
    __tablename__ = "participants"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default=ParticipantStatus.PENDING.value)
    queue_position = Column(Integer, nullable=False, default=0)
    registered_at = Column(DateTime(timezone=True), nullable=False)

    event = relationship("Event", back_populates="participants")

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'waitlisted', 'withdrawn')",
            name="check_participant_status",
        ),
        Index(
            "uq_participant_active_contact",
            "event_id",
            "email",
            unique=True,
            postgresql_where=_ACTIVE_SQL,
            sqlite_where=_ACTIVE_SQL,
        ),
        Index("ix_participants_event_status_position", "event_id", "status", "queue_position"),
    )

    @property
    def status_enum(self) -> ParticipantStatus:
        return ParticipantStatus(self.status)

    def __repr__(self) -> str:
        return (
            f"<Participant(id={self.id}, event={self.event_id}, email={self.email}, "
            f"status={self.status}, position={self.queue_position})>"
        )
