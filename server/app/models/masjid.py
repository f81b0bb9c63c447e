from __future__ import annotations

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.db import Base

# Lifecycle: active -> inactive. Masjids are never hard-deleted by normal flows.
MASJID_STATUSES = ("active", "inactive")
MasjidStatus = Enum(*MASJID_STATUSES, name="masjid_status")


class Masjid(Base):
    __tablename__ = "masajids"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    location = Column(Text, nullable=True)
    address = Column(Text, nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    country = Column(String(100), nullable=True)
    postal_code = Column(String(20), nullable=True)
    contact_email = Column(String(255), nullable=True)
    contact_phone = Column(String(50), nullable=True)
    status = Column(MasjidStatus, nullable=False, default="active")
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    created_by = relationship("User", foreign_keys=[created_by_id])
    memberships = relationship("MasjidMembership", back_populates="masjid", cascade="all, delete-orphan")

    @property
    def is_active(self) -> bool:
        return self.status == "active"
