from __future__ import annotations

import logging
from typing import Any, Mapping

from sqlalchemy.orm import Session

from app.core.errors import ValidationFailedError
from app.models.event import Event
from app.models.masjid import Masjid
from app.models.user import User

logger = logging.getLogger(__name__)

EVENTS_CATEGORY = "Events"
UPDATABLE_FIELDS = ("name", "description", "event_date", "event_time", "location")


def create_event(db: Session, actor: User, masjid: Masjid, values: Mapping[str, Any]) -> Event:
    event = Event(masjid_id=masjid.id, created_by_id=actor.id, status="active")
    for field in UPDATABLE_FIELDS:
        if field in values:
            setattr(event, field, values[field])
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info("event_created", extra={"masjid_id": masjid.id, "event_id": event.id, "created_by": actor.id})
    return event


def update_event(db: Session, event: Event, changes: Mapping[str, Any]) -> Event:
    if event.status == "deleted":
        raise ValidationFailedError("Cannot update a deleted event")
    for field, value in changes.items():
        if field in UPDATABLE_FIELDS:
            setattr(event, field, value)
    db.commit()
    db.refresh(event)
    return event


def delete_event(db: Session, actor: User, event: Event) -> Event:
    """Move the event to ``deleted``. There is no way back."""

    if event.status == "deleted":
        raise ValidationFailedError("Event is already deleted")
    event.status = "deleted"
    db.commit()
    db.refresh(event)
    logger.info("event_deleted", extra={"event_id": event.id, "deleted_by": actor.id})
    return event


def event_notice(masjid: Masjid, event: Event) -> dict[str, Any]:
    return {
        "title": f"New Event - {masjid.name}",
        "body": event.name,
        "data": {
            "masjidId": masjid.id,
            "masjidName": masjid.name,
            "eventId": event.id,
            "eventDate": event.event_date.isoformat(),
            "type": "event_created",
        },
    }
