"""
Event endpoints with Redis caching on list operations.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_admission_controller, get_managed_event, require_organizer
from app.db.session import get_db
from app.models.event import Event
from app.models.user import User
from app.schemas.event import (
    AutoApproveToggleResponse,
    EventCreate,
    EventListResponse,
    EventResponse,
    EventUpdate,
    OccupancyResponse,
)
from app.services.admission_service import AdmissionController
from app.services.event_service import (
    create_event,
    delete_event,
    get_event,
    list_events,
    update_event_details,
    validate_event_update,
)
from app.services.cache_service import get_cached_events, set_cached_events, invalidate_event_cache, make_event_list_key
from app.services.reporting_service import get_occupancy
from app.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/events", tags=["Events"])


@router.post("/", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    user: User = Depends(require_organizer),
    db: AsyncSession = Depends(get_db),
):
    """Create a new event. Requires the organizer role."""
    event = await create_event(db, event_data, user.id)
    await invalidate_event_cache()
    return event


@router.get("/", response_model=EventListResponse)
async def list_events_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    upcoming_only: bool = Query(True),
    category: Optional[str] = Query(None, max_length=100),
    event_status: Optional[str] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
):
    """
    List events with pagination.
    Results are cached in Redis; any admission change or event edit invalidates them.
    """
    key = make_event_list_key(page, page_size, upcoming_only, category, event_status)
    cached = await get_cached_events(key)
    if cached:
        logger.info("events_list_cache_hit", page=page)
        cached["cached"] = True
        return EventListResponse(**cached)

    events, total = await list_events(db, page, page_size, upcoming_only, category, event_status)

    response_data = {
        "events": [EventResponse.model_validate(e).model_dump() for e in events],
        "total": total,
        "page": page,
        "page_size": page_size,
        "cached": False,
    }
    await set_cached_events(key, response_data)

    return EventListResponse(**response_data)


@router.get("/{event_id}", response_model=EventResponse)
async def get_event_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get a single event by ID. Not cached (needs real-time occupancy)."""
    return await get_event(db, event_id)


@router.get("/{event_id}/occupancy", response_model=OccupancyResponse)
async def get_occupancy_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    return await get_occupancy(db, event_id)


@router.patch("/{event_id}", response_model=EventResponse)
async def update_event_endpoint(
    event_data: EventUpdate,
    event: Event = Depends(get_managed_event),
    db: AsyncSession = Depends(get_db),
    controller: AdmissionController = Depends(get_admission_controller),
):
    """
    Edit an event. Capacity and auto-approval changes run through the
    admission controller; raising capacity promotes waitlisted participants.
    """
    validate_event_update(event, event_data)
    if event_data.capacity is not None or event_data.auto_approve is not None:
        change = await controller.update_policy(
            event.id,
            capacity=event_data.capacity,
            auto_approve=event_data.auto_approve,
        )
        if change.promoted:
            logger.info("capacity_raise_promoted", event_id=event.id, promoted=[p.id for p in change.promoted])

    event = await update_event_details(db, event, event_data)
    await invalidate_event_cache()
    return event


@router.delete("/{event_id}", response_model=EventResponse)
async def delete_event_endpoint(
    event: Event = Depends(get_managed_event),
    db: AsyncSession = Depends(get_db),
):
    """Delete an event and every participant record attached to it."""
    deleted = await delete_event(db, event.id)
    await invalidate_event_cache()
    return deleted


@router.post("/{event_id}/toggle-auto-approve", response_model=AutoApproveToggleResponse)
async def toggle_auto_approve_endpoint(
    event: Event = Depends(get_managed_event),
    controller: AdmissionController = Depends(get_admission_controller),
):
    updated = await controller.toggle_auto_approve(event.id)
    await invalidate_event_cache()
    state = "enabled" if updated.auto_approve else "disabled"
    return AutoApproveToggleResponse(
        event=EventResponse.model_validate(updated),
        message=f"Auto-approval is now {state}",
    )
