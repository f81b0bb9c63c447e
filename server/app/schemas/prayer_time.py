from __future__ import annotations

from datetime import date, datetime, time
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, validator

PrayerName = Literal["Fajr", "Dhuhr", "Jummah", "Asr", "Maghrib", "Isha"]


class PrayerTimeUpsert(BaseModel):
    masjid_id: int = Field(..., ge=1)
    prayer_name: PrayerName
    prayer_time: time
    effective_date: Optional[date] = None
    notify_users: Optional[bool] = None


class PrayerTimeUpdate(BaseModel):
    prayer_time: Optional[time] = None
    effective_date: Optional[date] = None
    notify_users: Optional[bool] = None


class PrayerTimeEntry(BaseModel):
    prayer_name: PrayerName
    prayer_time: time


class PrayerTimeBulkUpsert(BaseModel):
    masjid_id: int = Field(..., ge=1)
    prayer_times: List[PrayerTimeEntry] = Field(..., min_length=1, max_length=6)
    effective_date: Optional[date] = None
    notify_users: Optional[bool] = None

    @validator("prayer_times")
    def unique_names(cls, value: List[PrayerTimeEntry]) -> List[PrayerTimeEntry]:
        names = [entry.prayer_name for entry in value]
        if len(names) != len(set(names)):
            raise ValueError("Each prayer may appear only once")
        return value


class PrayerTimeOut(BaseModel):
    id: int
    masjid_id: int
    prayer_name: PrayerName
    prayer_time: time
    effective_date: date
    notify_users: bool
    updated_by_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
