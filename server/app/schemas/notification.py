from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

NotificationCategory = Literal["Prayer Times", "Donations", "Events", "General"]


class NotificationCreate(BaseModel):
    masjid_id: int = Field(..., ge=1)
    title: str = Field(..., min_length=3, max_length=255)
    description: str = Field(..., min_length=1, max_length=1000)
    category: NotificationCategory


class NotificationUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=3, max_length=255)
    description: Optional[str] = Field(None, min_length=1, max_length=1000)
    category: Optional[NotificationCategory] = None


class NotificationOut(BaseModel):
    id: int
    masjid_id: int
    title: str
    description: str
    category: NotificationCategory
    source: str
    created_by_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationListResponse(BaseModel):
    items: List[NotificationOut]
    total: int
    page: int
    page_size: int


class ImamBroadcastRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    body: str = Field(..., min_length=1)
    masjid_id: Optional[int] = Field(None, ge=1)
