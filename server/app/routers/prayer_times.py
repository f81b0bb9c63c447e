from __future__ import annotations

from datetime import date

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from app.auth.deps import get_current_user
from app.core.db import get_db
from app.models.prayer_time import PrayerTime
from app.models.user import User
from app.schemas.prayer_time import PrayerTimeBulkUpsert, PrayerTimeOut, PrayerTimeUpdate, PrayerTimeUpsert
from app.services import permissions
from app.services import prayer_times as prayer_time_service
from app.services.dispatch import NotificationDispatcher, get_dispatcher
from app.services.masjids import get_masjid_or_404
from app.services.permissions import Capability
from app.services.prayer_times import PrayerTimeNotice

router = APIRouter(prefix="/prayer-times", tags=["prayer-times"])


def _get_prayer_time_or_404(db: Session, prayer_time_id: int) -> PrayerTime:
    record = db.get(PrayerTime, prayer_time_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Prayer time not found")
    return record


def _schedule(background_tasks: BackgroundTasks, dispatcher: NotificationDispatcher, notice: PrayerTimeNotice | None) -> None:
    if notice is None:
        return
    background_tasks.add_task(
        dispatcher.broadcast,
        notice.masjid_id,
        notice.category,
        notice.title,
        notice.body,
        notice.data,
        notice.exclude_user_ids,
    )


@router.get("/masjid/{masjid_id}", response_model=list[PrayerTimeOut], status_code=status.HTTP_200_OK)
def list_prayer_times(
    masjid_id: int,
    effective_date: date | None = Query(None),
    db: Session = Depends(get_db),
) -> list[PrayerTimeOut]:
    masjid = get_masjid_or_404(db, masjid_id)
    records = prayer_time_service.list_prayer_times(db, masjid.id, effective_date)
    return [PrayerTimeOut.from_orm(record) for record in records]


@router.get("/masjid/{masjid_id}/today", response_model=list[PrayerTimeOut], status_code=status.HTTP_200_OK)
def todays_prayer_times(masjid_id: int, db: Session = Depends(get_db)) -> list[PrayerTimeOut]:
    masjid = get_masjid_or_404(db, masjid_id)
    return [PrayerTimeOut.from_orm(record) for record in prayer_time_service.current_prayer_times(db, masjid.id)]


@router.post("", response_model=PrayerTimeOut)
def upsert_prayer_time(
    payload: PrayerTimeUpsert,
    response: Response,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> PrayerTimeOut:
    masjid = get_masjid_or_404(db, payload.masjid_id)
    permissions.ensure_permission(db, user, masjid.id, Capability.CHANGE_PRAYER_TIMES)
    record, created, notice = prayer_time_service.upsert_prayer_time(
        db,
        user,
        masjid,
        prayer_name=payload.prayer_name,
        prayer_time=payload.prayer_time,
        effective_date=payload.effective_date,
        notify_users=payload.notify_users,
    )
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    _schedule(background_tasks, dispatcher, notice)
    return PrayerTimeOut.from_orm(record)


@router.post("/bulk", response_model=list[PrayerTimeOut], status_code=status.HTTP_200_OK)
def bulk_upsert_prayer_times(
    payload: PrayerTimeBulkUpsert,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> list[PrayerTimeOut]:
    masjid = get_masjid_or_404(db, payload.masjid_id)
    permissions.ensure_permission(db, user, masjid.id, Capability.CHANGE_PRAYER_TIMES)
    records, notice = prayer_time_service.bulk_upsert(
        db,
        user,
        masjid,
        [(entry.prayer_name, entry.prayer_time) for entry in payload.prayer_times],
        effective_date=payload.effective_date,
        notify_users=payload.notify_users,
    )
    _schedule(background_tasks, dispatcher, notice)
    return [PrayerTimeOut.from_orm(record) for record in records]


@router.put("/{prayer_time_id}", response_model=PrayerTimeOut, status_code=status.HTTP_200_OK)
def update_prayer_time(
    prayer_time_id: int,
    payload: PrayerTimeUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> PrayerTimeOut:
    record = _get_prayer_time_or_404(db, prayer_time_id)
    masjid = get_masjid_or_404(db, record.masjid_id)
    permissions.ensure_permission(db, user, masjid.id, Capability.CHANGE_PRAYER_TIMES)
    record, notice = prayer_time_service.update_prayer_time(
        db,
        user,
        masjid,
        record,
        prayer_time=payload.prayer_time,
        effective_date=payload.effective_date,
        notify_users=payload.notify_users,
    )
    _schedule(background_tasks, dispatcher, notice)
    return PrayerTimeOut.from_orm(record)


@router.delete("/{prayer_time_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_prayer_time(
    prayer_time_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> None:
    record = _get_prayer_time_or_404(db, prayer_time_id)
    permissions.ensure_permission(db, user, record.masjid_id, Capability.CHANGE_PRAYER_TIMES)
    db.delete(record)
    db.commit()
