"""Per-recipient category preferences with an opt-out (default true) model."""
from __future__ import annotations

import logging
from typing import Iterable, Mapping, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import ValidationFailedError
from app.models.notification_settings import DeviceSettings, UserSettings
from app.services.device_identity import Recipient

logger = logging.getLogger(__name__)

PREFERENCE_FIELDS: dict[str, str] = {
    "prayer_times": "prayer_times_notifications",
    "events": "events_notifications",
    "donations": "donations_notifications",
    "general": "general_notifications",
    "questions": "questions_notifications",
}

CATEGORY_PREFERENCES: dict[str, str] = {
    "Prayer Times": "prayer_times",
    "Donations": "donations",
    "Events": "events",
    "General": "general",
}

SettingsRow = Union[UserSettings, DeviceSettings]


def preference_for_category(category: str) -> str:
    try:
        return CATEGORY_PREFERENCES[category]
    except KeyError as exc:
        raise ValidationFailedError(f"Invalid category: {category}") from exc


def is_enabled(row: SettingsRow | None, preference: str) -> bool:
    """A missing row, or a missing value, never denies delivery."""

    if row is None:
        return True
    return getattr(row, PREFERENCE_FIELDS[preference]) is not False


def load_user_settings(db: Session, user_ids: Iterable[int]) -> dict[int, UserSettings]:
    ids = list(set(user_ids))
    if not ids:
        return {}
    rows = db.query(UserSettings).filter(UserSettings.user_id.in_(ids)).all()
    return {row.user_id: row for row in rows}


def load_device_settings(db: Session, device_ids: Iterable[str]) -> dict[str, DeviceSettings]:
    ids = list(set(device_ids))
    if not ids:
        return {}
    rows = db.query(DeviceSettings).filter(DeviceSettings.device_id.in_(ids)).all()
    return {row.device_id: row for row in rows}


def _lookup(db: Session, recipient: Recipient) -> SettingsRow | None:
    if recipient.is_user:
        return db.query(UserSettings).filter(UserSettings.user_id == recipient.user_id).first()
    return db.query(DeviceSettings).filter(DeviceSettings.device_id == recipient.device_id).first()


def get_or_create_settings(db: Session, recipient: Recipient) -> SettingsRow:
    """Return the recipient's settings row, creating it with every category on."""

    row = _lookup(db, recipient)
    if row is not None:
        return row
    if recipient.is_user:
        row = UserSettings(user_id=recipient.user_id)
    else:
        row = DeviceSettings(device_id=recipient.device_id)
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        # A concurrent request created it first.
        db.rollback()
        row = _lookup(db, recipient)
        if row is None:
            raise
        return row
    db.refresh(row)
    logger.info(
        "notification_settings_created",
        extra={"user_id": recipient.user_id, "device_id": recipient.device_id},
    )
    return row


def update_settings(db: Session, recipient: Recipient, changes: Mapping[str, bool | None]) -> SettingsRow:
    row = get_or_create_settings(db, recipient)
    for preference, value in changes.items():
        if preference not in PREFERENCE_FIELDS:
            raise ValidationFailedError(f"Unknown preference: {preference}")
        if value is not None:
            setattr(row, PREFERENCE_FIELDS[preference], bool(value))
    db.commit()
    db.refresh(row)
    return row


def as_dict(row: SettingsRow) -> dict[str, bool]:
    return {preference: bool(getattr(row, column)) for preference, column in PREFERENCE_FIELDS.items()}
