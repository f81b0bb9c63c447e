from __future__ import annotations

from datetime import date

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.auth.deps import get_current_user
from app.core.db import get_db
from app.models.event import Event
from app.models.user import User
from app.schemas.event import EventCreate, EventListResponse, EventOut, EventUpdate
from app.services import events as event_service
from app.services import permissions
from app.services.dispatch import NotificationDispatcher, get_dispatcher
from app.services.masjids import get_masjid_or_404
from app.services.permissions import Capability

router = APIRouter(prefix="/events", tags=["events"])


def _get_event_or_404(db: Session, event_id: int) -> Event:
    event = db.get(Event, event_id)
    if event is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    return event


@router.get("/masjid/{masjid_id}", response_model=EventListResponse, status_code=status.HTTP_200_OK)
def list_events(
    masjid_id: int,
    *,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    search: str | None = Query(None, min_length=1),
    when: str | None = Query(None, pattern="^(upcoming|past)$"),
    db: Session = Depends(get_db),
) -> EventListResponse:
    masjid = get_masjid_or_404(db, masjid_id)
    query = db.query(Event).filter(Event.masjid_id == masjid.id, Event.status == "active")
    if search:
        like = f"%{search.strip().lower()}%"
        query = query.filter(
            or_(func.lower(Event.name).like(like), func.lower(func.coalesce(Event.description, "")).like(like))
        )
    today = date.today()
    if when == "upcoming":
        query = query.filter(Event.event_date >= today).order_by(Event.event_date.asc(), Event.event_time.asc())
    elif when == "past":
        query = query.filter(Event.event_date < today).order_by(Event.event_date.desc(), Event.event_time.desc())
    else:
        query = query.order_by(Event.event_date.desc(), Event.event_time.desc())
    total = query.count()
    items = query.offset((page - 1) * page_size).limit(page_size).all()
    return EventListResponse(
        items=[EventOut.from_orm(item) for item in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{event_id}", response_model=EventOut, status_code=status.HTTP_200_OK)
def get_event(event_id: int, db: Session = Depends(get_db)) -> EventOut:
    event = _get_event_or_404(db, event_id)
    if event.status == "deleted":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    return EventOut.from_orm(event)


@router.post("", response_model=EventOut, status_code=status.HTTP_201_CREATED)
def create_event(
    payload: EventCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> EventOut:
    masjid = get_masjid_or_404(db, payload.masjid_id)
    permissions.ensure_permission(db, user, masjid.id, Capability.CREATE_EVENTS)
    event = event_service.create_event(db, user, masjid, payload.model_dump(exclude={"masjid_id"}))
    notice = event_service.event_notice(masjid, event)
    background_tasks.add_task(
        dispatcher.broadcast,
        masjid.id,
        event_service.EVENTS_CATEGORY,
        notice["title"],
        notice["body"],
        notice["data"],
    )
    return EventOut.from_orm(event)


@router.put("/{event_id}", response_model=EventOut, status_code=status.HTTP_200_OK)
def update_event(
    event_id: int,
    payload: EventUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> EventOut:
    event = _get_event_or_404(db, event_id)
    permissions.ensure_permission(db, user, event.masjid_id, Capability.CREATE_EVENTS)
    updated = event_service.update_event(db, event, payload.model_dump(exclude_unset=True, exclude_none=True))
    return EventOut.from_orm(updated)


@router.delete("/{event_id}", response_model=EventOut, status_code=status.HTTP_200_OK)
def delete_event(
    event_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> EventOut:
    event = _get_event_or_404(db, event_id)
    permissions.ensure_permission(db, user, event.masjid_id, Capability.CREATE_EVENTS)
    return EventOut.from_orm(event_service.delete_event(db, user, event))
