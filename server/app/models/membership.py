from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Index, Integer, UniqueConstraint
from sqlalchemy.orm import relationship

from app.core.db import Base

MEMBERSHIP_ROLES = ("imam", "admin")
MembershipRole = Enum(*MEMBERSHIP_ROLES, name="membership_role")

CAPABILITY_FIELDS = (
    "can_view_complaints",
    "can_answer_complaints",
    "can_view_questions",
    "can_answer_questions",
    "can_change_prayer_times",
    "can_create_events",
    "can_create_notifications",
)


class MasjidMembership(Base):
    """A user's role at a masjid together with its capability bits.

    Capability columns deliberately carry no default: rows are built through
    ``app.services.memberships.build_membership`` which always seeds them, and
    an insert that skips seeding fails instead of silently granting nothing.
    """

    __tablename__ = "masjid_memberships"
    __table_args__ = (
        UniqueConstraint("user_id", "masjid_id", "role", name="uq_masjid_membership_user_masjid_role"),
        Index("ix_masjid_memberships_masjid_role", "masjid_id", "role"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    masjid_id = Column(Integer, ForeignKey("masajids.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(MembershipRole, nullable=False)
    can_view_complaints = Column(Boolean, nullable=False)
    can_answer_complaints = Column(Boolean, nullable=False)
    can_view_questions = Column(Boolean, nullable=False)
    can_answer_questions = Column(Boolean, nullable=False)
    can_change_prayer_times = Column(Boolean, nullable=False)
    can_create_events = Column(Boolean, nullable=False)
    can_create_notifications = Column(Boolean, nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)
    assigned_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    assigned_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    user = relationship("User", foreign_keys=[user_id], back_populates="memberships")
    masjid = relationship("Masjid", back_populates="memberships")
    assigned_by = relationship("User", foreign_keys=[assigned_by_id])

    def capabilities(self) -> dict[str, bool]:
        return {field: bool(getattr(self, field)) for field in CAPABILITY_FIELDS}
