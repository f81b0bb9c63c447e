from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.db import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    # Null for accounts created through a federated identity provider.
    hashed_password = Column(String(255), nullable=True)
    auth_provider = Column(String(32), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    is_super_admin = Column(Boolean, default=False, nullable=False)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    memberships = relationship(
        "MasjidMembership",
        foreign_keys="MasjidMembership.user_id",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    settings = relationship("UserSettings", uselist=False, back_populates="user", cascade="all, delete-orphan")
