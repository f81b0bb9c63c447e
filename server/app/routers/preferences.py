from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.auth.deps import get_current_user, get_device_identity
from app.core.db import get_db
from app.models.user import User
from app.schemas.device import DeviceIdentity
from app.schemas.preferences import (
    DevicePreferencesOut,
    DevicePreferencesUpdate,
    NotificationPreferences,
    PreferencesUpdate,
)
from app.services import preferences as preference_service
from app.services.device_identity import Recipient, resolve_recipient

router = APIRouter(tags=["preferences"])


@router.get("/users/me/settings", response_model=NotificationPreferences, status_code=status.HTTP_200_OK)
def get_user_settings(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> NotificationPreferences:
    row = preference_service.get_or_create_settings(db, Recipient(user_id=user.id))
    return NotificationPreferences(**preference_service.as_dict(row))


@router.put("/users/me/settings", response_model=NotificationPreferences, status_code=status.HTTP_200_OK)
def update_user_settings(
    payload: PreferencesUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> NotificationPreferences:
    row = preference_service.update_settings(db, Recipient(user_id=user.id), payload.model_dump(exclude_none=True))
    return NotificationPreferences(**preference_service.as_dict(row))


@router.get("/device-settings", response_model=DevicePreferencesOut, status_code=status.HTTP_200_OK)
def get_device_settings(
    device: DeviceIdentity = Depends(get_device_identity),
    db: Session = Depends(get_db),
) -> DevicePreferencesOut:
    recipient = resolve_recipient(None, device.device_id, device.platform, device.app_version)
    row = preference_service.get_or_create_settings(db, recipient)
    return DevicePreferencesOut(device_id=recipient.device_id, **preference_service.as_dict(row))


@router.put("/device-settings", response_model=DevicePreferencesOut, status_code=status.HTTP_200_OK)
def update_device_settings(
    payload: DevicePreferencesUpdate,
    db: Session = Depends(get_db),
) -> DevicePreferencesOut:
    recipient = resolve_recipient(None, payload.device_id, payload.platform, payload.app_version)
    changes = payload.model_dump(exclude={"device_id", "platform", "app_version"}, exclude_none=True)
    row = preference_service.update_settings(db, recipient, changes)
    return DevicePreferencesOut(device_id=recipient.device_id, **preference_service.as_dict(row))
