from __future__ import annotations

import logging
import re
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from app.auth.security import hash_password, verify_password
from app.core.errors import ConflictError, ValidationFailedError
from app.models.user import User

logger = logging.getLogger(__name__)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def validate_password_strength(password: str) -> None:
    if len(password) < 8:
        raise ValidationFailedError("Password must be at least 8 characters long.")
    if not re.search(r"[A-Za-z]", password):
        raise ValidationFailedError("Password must include at least one letter.")
    if not re.search(r"[0-9]", password):
        raise ValidationFailedError("Password must include at least one digit.")


def register_user(db: Session, *, email: str, password: str, full_name: str | None, phone: str | None = None) -> User:
    normalized = normalize_email(email)
    if db.query(User.id).filter(User.email == normalized).first() is not None:
        raise ConflictError("Email is already registered")
    validate_password_strength(password)
    user = User(
        email=normalized,
        full_name=full_name.strip() if full_name else None,
        phone=phone,
        hashed_password=hash_password(password),
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("user_registered", extra={"user_id": user.id})
    return user


def authenticate(db: Session, email: str, password: str) -> User | None:
    user = db.query(User).filter(User.email == normalize_email(email)).first()
    if user is None or not user.is_active:
        return None
    if not verify_password(password, user.hashed_password):
        return None
    user.last_login_at = now_utc()
    db.commit()
    return user
