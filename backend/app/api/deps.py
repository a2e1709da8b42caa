"""
Shared route dependencies: current user, organizer checks and the
admission controller singleton.
"""

from typing import Optional

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import get_current_user_id
from app.db.session import async_session_factory, get_db
from app.models.event import Event
from app.models.user import User
from app.services.admission_service import AdmissionController
from app.services.auth_service import get_user, is_organizer
from app.services.event_service import get_event
from app.services.notification_service import NotificationDispatcher, build_notifier

_controller: Optional[AdmissionController] = None


def get_admission_controller() -> AdmissionController:
    """Get admission controller singleton."""
    global _controller
    if _controller is None:
        _controller = AdmissionController(
            session_factory=async_session_factory,
            dispatcher=NotificationDispatcher(build_notifier()),
        )
    return _controller


async def get_current_user(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> User:
    user = await get_user(db, user_id)
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Inactive or missing user",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def require_organizer(user: User = Depends(get_current_user)) -> User:
    if not is_organizer(user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Organizer role required",
        )
    return user


async def get_managed_event(
    event_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Event:
    """The event, if the caller owns it or is a configured organizer."""
    event = await get_event(db, event_id)
    if event.organizer_id != user.id and not is_organizer(user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the event owner or an organizer can manage this event",
        )
    return event
