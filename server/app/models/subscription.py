from __future__ import annotations

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.db import Base


class MasjidSubscription(Base):
    __tablename__ = "masjid_subscriptions"
    __table_args__ = (
        CheckConstraint(
            "(user_id IS NULL) <> (device_id IS NULL)",
            name="ck_masjid_subscriptions_single_recipient",
        ),
        Index("ix_masjid_subscriptions_masjid_active", "masjid_id", "is_active"),
    )

    id = Column(Integer, primary_key=True)
    masjid_id = Column(Integer, ForeignKey("masajids.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    device_id = Column(String(64), nullable=True, index=True)
    fcm_token = Column(Text, nullable=True, index=True)
    # Deprecated: a subscription covers every category, filtering happens per recipient preference.
    category = Column(String(32), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    masjid = relationship("Masjid")
    user = relationship("User")
