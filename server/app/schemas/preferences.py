from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from app.schemas.device import DeviceIdentity


class NotificationPreferences(BaseModel):
    prayer_times: bool = True
    events: bool = True
    donations: bool = True
    general: bool = True
    questions: bool = True


class PreferencesUpdate(BaseModel):
    prayer_times: Optional[bool] = None
    events: Optional[bool] = None
    donations: Optional[bool] = None
    general: Optional[bool] = None
    questions: Optional[bool] = None


class DevicePreferencesUpdate(DeviceIdentity, PreferencesUpdate):
    pass


class DevicePreferencesOut(NotificationPreferences):
    device_id: str
