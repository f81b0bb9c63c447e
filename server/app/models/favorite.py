from __future__ import annotations

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.db import Base


class FavoriteMasjid(Base):
    __tablename__ = "favorite_masajids"
    __table_args__ = (
        UniqueConstraint("user_id", "masjid_id", name="uq_favorite_masajids_user"),
        UniqueConstraint("device_id", "masjid_id", name="uq_favorite_masajids_device"),
        CheckConstraint("(user_id IS NULL) <> (device_id IS NULL)", name="ck_favorite_masajids_single_owner"),
    )

    id = Column(Integer, primary_key=True)
    masjid_id = Column(Integer, ForeignKey("masajids.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    device_id = Column(String(64), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    masjid = relationship("Masjid")
