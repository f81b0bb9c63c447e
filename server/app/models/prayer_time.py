from __future__ import annotations

from datetime import date

from sqlalchemy import Boolean, Column, Date, DateTime, Enum, ForeignKey, Integer, Time, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.db import Base

PRAYER_NAMES = ("Fajr", "Dhuhr", "Jummah", "Asr", "Maghrib", "Isha")
PrayerName = Enum(*PRAYER_NAMES, name="prayer_name")


class PrayerTime(Base):
    __tablename__ = "prayer_times"
    __table_args__ = (
        UniqueConstraint("masjid_id", "prayer_name", "effective_date", name="uq_prayer_times_masjid_prayer_date"),
    )

    id = Column(Integer, primary_key=True)
    masjid_id = Column(Integer, ForeignKey("masajids.id", ondelete="CASCADE"), nullable=False, index=True)
    prayer_name = Column(PrayerName, nullable=False)
    prayer_time = Column(Time, nullable=False)
    effective_date = Column(Date, nullable=False, default=date.today)
    notify_users = Column(Boolean, nullable=False, default=False)
    updated_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    masjid = relationship("Masjid")
    updated_by = relationship("User")
