from __future__ import annotations

from sqlalchemy import Column, Date, DateTime, Enum, ForeignKey, Integer, String, Text, Time
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.db import Base

# active -> deleted is one-way.
EVENT_STATUSES = ("active", "deleted")
EventStatus = Enum(*EVENT_STATUSES, name="event_status")


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True)
    masjid_id = Column(Integer, ForeignKey("masajids.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    event_date = Column(Date, nullable=False, index=True)
    event_time = Column(Time, nullable=False)
    location = Column(Text, nullable=True)
    status = Column(EventStatus, nullable=False, default="active")
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    masjid = relationship("Masjid")
    created_by = relationship("User")
