from __future__ import annotations

from datetime import date, datetime, time
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

EventStatus = Literal["active", "deleted"]


class EventCreate(BaseModel):
    masjid_id: int = Field(..., ge=1)
    name: str = Field(..., min_length=3, max_length=255)
    description: Optional[str] = None
    event_date: date
    event_time: time
    location: Optional[str] = None


class EventUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=3, max_length=255)
    description: Optional[str] = None
    event_date: Optional[date] = None
    event_time: Optional[time] = None
    location: Optional[str] = None


class EventOut(BaseModel):
    id: int
    masjid_id: int
    name: str
    description: Optional[str] = None
    event_date: date
    event_time: time
    location: Optional[str] = None
    status: EventStatus
    created_by_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class EventListResponse(BaseModel):
    items: List[EventOut]
    total: int
    page: int
    page_size: int
