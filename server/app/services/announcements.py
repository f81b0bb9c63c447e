from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.core.errors import ValidationFailedError
from app.models.notification import NOTIFICATION_CATEGORIES, Notification

logger = logging.getLogger(__name__)

PRAYER_TIMES_CATEGORY = "Prayer Times"
PRAYER_TIME_CHANGE_SOURCE = "prayer_time_change"


def ensure_category(category: str) -> str:
    if category not in NOTIFICATION_CATEGORIES:
        raise ValidationFailedError(f"Category must be one of: {', '.join(NOTIFICATION_CATEGORIES)}")
    return category


def publish_announcement(
    db: Session,
    *,
    masjid_id: int,
    title: str,
    description: str,
    category: str,
    created_by_id: int | None,
    source: str = "manual",
    commit: bool = True,
) -> Notification:
    notification = Notification(
        masjid_id=masjid_id,
        title=title,
        description=description,
        category=ensure_category(category),
        source=source,
        created_by_id=created_by_id,
    )
    db.add(notification)
    if commit:
        db.commit()
        db.refresh(notification)
    else:
        db.flush()
    logger.info(
        "announcement_recorded",
        extra={"masjid_id": masjid_id, "notification_id": notification.id, "category": category, "source": source},
    )
    return notification


def announcement_fanout_required(notification: Notification) -> bool:
    """Prayer-time announcements are delivered by the prayer-time flow itself."""

    return not (
        notification.category == PRAYER_TIMES_CATEGORY and notification.source == PRAYER_TIME_CHANGE_SOURCE
    )
