from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, time
from typing import Iterable, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, ValidationFailedError
from app.models.masjid import Masjid
from app.models.membership import MasjidMembership
from app.models.prayer_time import PRAYER_NAMES, PrayerTime
from app.models.user import User
from app.services.announcements import PRAYER_TIME_CHANGE_SOURCE, PRAYER_TIMES_CATEGORY, publish_announcement

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PrayerTimeNotice:
    """A prayer-time push ready to be handed to the dispatcher."""

    masjid_id: int
    title: str
    body: str
    data: dict[str, str] = field(default_factory=dict)
    exclude_user_ids: tuple[int, ...] = ()
    category: str = PRAYER_TIMES_CATEGORY


def format_time(value: time) -> str:
    return value.strftime("%H:%M")


def sort_key(record: PrayerTime) -> tuple:
    return (-record.effective_date.toordinal(), PRAYER_NAMES.index(record.prayer_name))


def _ensure_prayer_name(name: str) -> str:
    if name not in PRAYER_NAMES:
        raise ValidationFailedError(f"Prayer name must be one of: {', '.join(PRAYER_NAMES)}")
    return name


def excluded_actor_ids(db: Session, actor: User, masjid_id: int) -> tuple[int, ...]:
    """The acting user is left out of their own change notice when they staff the masjid."""

    staffed = (
        db.query(MasjidMembership.id)
        .filter(MasjidMembership.user_id == actor.id, MasjidMembership.masjid_id == masjid_id)
        .first()
    )
    if staffed is None:
        return ()
    logger.info("prayer_time_actor_excluded", extra={"masjid_id": masjid_id, "user_id": actor.id})
    return (actor.id,)


def _single_notice(db: Session, actor: User, masjid: Masjid, record: PrayerTime) -> PrayerTimeNotice:
    formatted = format_time(record.prayer_time)
    return PrayerTimeNotice(
        masjid_id=masjid.id,
        title=f"Prayer Time Updated - {masjid.name}",
        body=f"{record.prayer_name} prayer time has been updated to {formatted}",
        data={
            "masjidId": str(masjid.id),
            "masjidName": masjid.name,
            "prayerName": record.prayer_name,
            "prayerTime": formatted,
            "effectiveDate": record.effective_date.isoformat(),
            "category": PRAYER_TIMES_CATEGORY,
            "type": "prayer_time_update",
        },
        exclude_user_ids=excluded_actor_ids(db, actor, masjid.id),
    )


def _bulk_notice(db: Session, actor: User, masjid: Masjid, records: Sequence[PrayerTime]) -> PrayerTimeNotice:
    return PrayerTimeNotice(
        masjid_id=masjid.id,
        title=f"Prayer Times Updated - {masjid.name}",
        body=f"Prayer times have been updated for {masjid.name}",
        data={
            "masjidId": str(masjid.id),
            "masjidName": masjid.name,
            "category": PRAYER_TIMES_CATEGORY,
            "type": "prayer_time_bulk_update",
            "prayerTimesCount": str(len(records)),
        },
        exclude_user_ids=excluded_actor_ids(db, actor, masjid.id),
    )


def _record_announcement(db: Session, actor: User, notice: PrayerTimeNotice) -> None:
    # Recorded for the masjid's feed only; the notice itself is the single push for this change.
    publish_announcement(
        db,
        masjid_id=notice.masjid_id,
        title=notice.title,
        description=notice.body,
        category=PRAYER_TIMES_CATEGORY,
        created_by_id=actor.id,
        source=PRAYER_TIME_CHANGE_SOURCE,
        commit=False,
    )


def _apply(
    db: Session,
    actor: User,
    masjid: Masjid,
    prayer_name: str,
    prayer_time: time,
    effective_date: date,
    notify_users: bool | None,
) -> tuple[PrayerTime, bool, bool]:
    """Create or update one row; returns (record, created, time_changed)."""

    record = (
        db.query(PrayerTime)
        .filter(
            PrayerTime.masjid_id == masjid.id,
            PrayerTime.prayer_name == _ensure_prayer_name(prayer_name),
            PrayerTime.effective_date == effective_date,
        )
        .first()
    )
    if record is None:
        record = PrayerTime(
            masjid_id=masjid.id,
            prayer_name=prayer_name,
            prayer_time=prayer_time,
            effective_date=effective_date,
            updated_by_id=actor.id,
            notify_users=bool(notify_users),
        )
        db.add(record)
        return record, True, True

    changed = record.prayer_time != prayer_time
    record.prayer_time = prayer_time
    record.updated_by_id = actor.id
    if notify_users is not None:
        record.notify_users = notify_users
    return record, False, changed


def upsert_prayer_time(
    db: Session,
    actor: User,
    masjid: Masjid,
    *,
    prayer_name: str,
    prayer_time: time,
    effective_date: date | None = None,
    notify_users: bool | None = None,
) -> tuple[PrayerTime, bool, PrayerTimeNotice | None]:
    record, created, changed = _apply(
        db, actor, masjid, prayer_name, prayer_time, effective_date or date.today(), notify_users
    )
    db.flush()
    notice = _single_notice(db, actor, masjid, record) if changed else None
    if notice is not None and record.notify_users:
        _record_announcement(db, actor, notice)
    db.commit()
    db.refresh(record)
    logger.info(
        "prayer_time_saved",
        extra={
            "masjid_id": masjid.id,
            "prayer_name": record.prayer_name,
            "was_created": created,
            "time_changed": changed,
            "updated_by": actor.id,
        },
    )
    return record, created, notice


def update_prayer_time(
    db: Session,
    actor: User,
    masjid: Masjid,
    record: PrayerTime,
    *,
    prayer_time: time | None = None,
    effective_date: date | None = None,
    notify_users: bool | None = None,
) -> tuple[PrayerTime, PrayerTimeNotice | None]:
    changed = prayer_time is not None and record.prayer_time != prayer_time
    if prayer_time is not None:
        record.prayer_time = prayer_time
    if effective_date is not None:
        record.effective_date = effective_date
    if notify_users is not None:
        record.notify_users = notify_users
    record.updated_by_id = actor.id
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("A prayer time already exists for that prayer and date") from exc

    notice = _single_notice(db, actor, masjid, record) if changed else None
    if notice is not None and record.notify_users:
        _record_announcement(db, actor, notice)
    db.commit()
    db.refresh(record)
    logger.info("prayer_time_updated", extra={"prayer_time_id": record.id, "time_changed": changed})
    return record, notice


def bulk_upsert(
    db: Session,
    actor: User,
    masjid: Masjid,
    entries: Iterable[tuple[str, time]],
    *,
    effective_date: date | None = None,
    notify_users: bool | None = None,
) -> tuple[list[PrayerTime], PrayerTimeNotice | None]:
    """Upsert a set of prayers in one transaction; at most one notice for the whole set."""

    target_date = effective_date or date.today()
    records: list[PrayerTime] = []
    any_changed = False
    try:
        for prayer_name, prayer_time in entries:
            record, _, changed = _apply(db, actor, masjid, prayer_name, prayer_time, target_date, notify_users)
            records.append(record)
            any_changed = any_changed or changed
            db.flush()
    except Exception:
        db.rollback()
        raise

    notice = _bulk_notice(db, actor, masjid, records) if any_changed else None
    if notice is not None and notify_users:
        _record_announcement(db, actor, notice)
    db.commit()
    for record in records:
        db.refresh(record)
    logger.info(
        "prayer_times_bulk_saved",
        extra={"masjid_id": masjid.id, "count": len(records), "changed": any_changed, "updated_by": actor.id},
    )
    return sorted(records, key=sort_key), notice


def list_prayer_times(db: Session, masjid_id: int, effective_date: date | None = None) -> list[PrayerTime]:
    query = db.query(PrayerTime).filter(PrayerTime.masjid_id == masjid_id)
    if effective_date is not None:
        query = query.filter(PrayerTime.effective_date == effective_date)
    return sorted(query.all(), key=sort_key)


def current_prayer_times(db: Session, masjid_id: int, today: date | None = None) -> list[PrayerTime]:
    """Latest effective row per prayer as of ``today``."""

    rows = list_prayer_times_until(db, masjid_id, today or date.today())
    latest: dict[str, PrayerTime] = {}
    for row in rows:
        latest.setdefault(row.prayer_name, row)
    return sorted(latest.values(), key=lambda row: PRAYER_NAMES.index(row.prayer_name))


def list_prayer_times_until(db: Session, masjid_id: int, until: date) -> list[PrayerTime]:
    rows = (
        db.query(PrayerTime)
        .filter(PrayerTime.masjid_id == masjid_id, PrayerTime.effective_date <= until)
        .all()
    )
    return sorted(rows, key=sort_key)
