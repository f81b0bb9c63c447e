from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.auth.deps import get_current_user
from app.core.db import get_db
from app.models.notification import Notification
from app.models.user import User
from app.schemas.notification import (
    NotificationCategory,
    NotificationCreate,
    NotificationListResponse,
    NotificationOut,
    NotificationUpdate,
)
from app.services import permissions
from app.services.announcements import publish_announcement
from app.services.dispatch import NotificationDispatcher, get_dispatcher
from app.services.masjids import get_masjid_or_404
from app.services.permissions import Capability

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _get_notification_or_404(db: Session, notification_id: int) -> Notification:
    notification = db.get(Notification, notification_id)
    if notification is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return notification


@router.get("/masjid/{masjid_id}", response_model=NotificationListResponse, status_code=status.HTTP_200_OK)
def list_notifications(
    masjid_id: int,
    *,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    category: NotificationCategory | None = Query(None),
    db: Session = Depends(get_db),
) -> NotificationListResponse:
    masjid = get_masjid_or_404(db, masjid_id)
    query = db.query(Notification).filter(Notification.masjid_id == masjid.id)
    if category:
        query = query.filter(Notification.category == category)
    total = query.count()
    items = (
        query.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return NotificationListResponse(
        items=[NotificationOut.from_orm(item) for item in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{notification_id}", response_model=NotificationOut, status_code=status.HTTP_200_OK)
def get_notification(notification_id: int, db: Session = Depends(get_db)) -> NotificationOut:
    return NotificationOut.from_orm(_get_notification_or_404(db, notification_id))


@router.post("", response_model=NotificationOut, status_code=status.HTTP_201_CREATED)
def create_notification(
    payload: NotificationCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> NotificationOut:
    masjid = get_masjid_or_404(db, payload.masjid_id)
    permissions.ensure_permission(db, user, masjid.id, Capability.CREATE_NOTIFICATIONS)
    notification = publish_announcement(
        db,
        masjid_id=masjid.id,
        title=payload.title.strip(),
        description=payload.description.strip(),
        category=payload.category,
        created_by_id=user.id,
    )
    background_tasks.add_task(dispatcher.announcement_created, notification.id)
    return NotificationOut.from_orm(notification)


@router.put("/{notification_id}", response_model=NotificationOut, status_code=status.HTTP_200_OK)
def update_notification(
    notification_id: int,
    payload: NotificationUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> NotificationOut:
    notification = _get_notification_or_404(db, notification_id)
    permissions.ensure_permission(db, user, notification.masjid_id, Capability.CREATE_NOTIFICATIONS)
    for field, value in payload.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(notification, field, value)
    db.commit()
    db.refresh(notification)
    return NotificationOut.from_orm(notification)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> None:
    notification = _get_notification_or_404(db, notification_id)
    permissions.ensure_permission(db, user, notification.masjid_id, Capability.CREATE_NOTIFICATIONS)
    db.delete(notification)
    db.commit()
