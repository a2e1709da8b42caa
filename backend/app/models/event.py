"""
Event model with admission state.

Key design decisions:
- `approved_count` is denormalized occupancy; only the admission controller
  writes it, always in the same transaction as the participant change
- CHECK constraints keep 0 <= approved_count <= capacity at the DB level
- `version` is bumped on every occupancy change so concurrent writers
  can be detected
- Index on `date` for listing upcoming events
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship

from app.db.base import Base, TimestampMixin

EVENT_STATUSES = ("upcoming", "ongoing", "completed", "cancelled")


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(String(2000), nullable=True)
    category = Column(String(100), nullable=True)
    date = Column(DateTime(timezone=True), nullable=False)
    location = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default="upcoming")
    registration_closes_at = Column(DateTime(timezone=True), nullable=False)
    capacity = Column(Integer, nullable=False)
    approved_count = Column(Integer, nullable=False, default=0)
    auto_approve = Column(Boolean, nullable=False, default=False)
    organizer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    version = Column(Integer, nullable=False, default=1)

    participants = relationship(
        "Participant",
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("capacity > 0", name="check_capacity_positive"),
        CheckConstraint("approved_count >= 0", name="check_approved_count_non_negative"),
        CheckConstraint("approved_count <= capacity", name="check_approved_lte_capacity"),
        CheckConstraint(
            "status IN ('upcoming', 'ongoing', 'completed', 'cancelled')",
            name="check_event_status",
        ),
        Index("ix_events_date", "date"),
    )

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title}, approved={self.approved_count}/{self.capacity})>"
