from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, validator

from app.schemas.device import DeviceIdentity


class SubscribeRequest(DeviceIdentity):
    masjid_id: int = Field(..., ge=1)
    fcm_token: Optional[str] = Field(None, max_length=4096)


class UnsubscribeRequest(DeviceIdentity):
    masjid_id: int = Field(..., ge=1)


class RegisterDeviceRequest(DeviceIdentity):
    fcm_token: str = Field(..., min_length=1, max_length=4096)

    @validator("fcm_token")
    def strip_token(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("FCM token is required")
        return cleaned


class SubscriptionOut(BaseModel):
    id: int
    masjid_id: int
    user_id: Optional[int] = None
    device_id: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class SubscriptionListResponse(BaseModel):
    items: List[SubscriptionOut]
    total: int


class RegisterDeviceResponse(BaseModel):
    device_id: str
    updated: int
