from __future__ import annotations

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.db import Base

NOTIFICATION_CATEGORIES = ("Prayer Times", "Donations", "Events", "General")
NotificationCategory = Enum(*NOTIFICATION_CATEGORIES, name="notification_category")

NOTIFICATION_SOURCES = ("manual", "prayer_time_change")
NotificationSource = Enum(*NOTIFICATION_SOURCES, name="notification_source")


class Notification(Base):
    """An announcement published to a masjid's subscribers."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True)
    masjid_id = Column(Integer, ForeignKey("masajids.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(NotificationCategory, nullable=False)
    source = Column(NotificationSource, nullable=False, default="manual")
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    masjid = relationship("Masjid")
    created_by = relationship("User")
