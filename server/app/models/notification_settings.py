from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.db import Base


class CategoryTogglesMixin:
    prayer_times_notifications = Column(Boolean, nullable=False, default=True)
    events_notifications = Column(Boolean, nullable=False, default=True)
    donations_notifications = Column(Boolean, nullable=False, default=True)
    general_notifications = Column(Boolean, nullable=False, default=True)
    questions_notifications = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class UserSettings(CategoryTogglesMixin, Base):
    __tablename__ = "user_settings"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    user = relationship("User", back_populates="settings")


class DeviceSettings(CategoryTogglesMixin, Base):
    __tablename__ = "device_settings"

    id = Column(Integer, primary_key=True)
    device_id = Column(String(64), nullable=False, unique=True)
