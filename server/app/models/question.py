from __future__ import annotations

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.db import Base

QUESTION_STATUSES = ("new", "replied")
QuestionStatus = Enum(*QUESTION_STATUSES, name="question_status")


class Question(Base):
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True)
    masjid_id = Column(Integer, ForeignKey("masajids.id", ondelete="CASCADE"), nullable=False, index=True)
    # Exactly one of user_id / device_id identifies the asker when known.
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    device_id = Column(String(64), nullable=True, index=True)
    user_name = Column(String(255), nullable=False)
    user_email = Column(String(255), nullable=True)
    title = Column(String(255), nullable=False)
    question = Column(Text, nullable=False)
    status = Column(QuestionStatus, nullable=False, default="new", index=True)
    reply = Column(Text, nullable=True)
    replied_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    replied_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    masjid = relationship("Masjid")
    user = relationship("User", foreign_keys=[user_id])
    replied_by = relationship("User", foreign_keys=[replied_by_id])
