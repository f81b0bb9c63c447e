from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.core.errors import ConflictError, NotFoundError
from app.models.user import User
from app.services.permissions import ensure_not_self

logger = logging.getLogger(__name__)


def get_user_or_404(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


def promote(db: Session, actor: User, user_id: int) -> User:
    ensure_not_self(actor, user_id, "You cannot modify your own super admin status")
    user = get_user_or_404(db, user_id)
    if user.is_super_admin:
        raise ConflictError("User is already a super admin")
    user.is_super_admin = True
    db.commit()
    db.refresh(user)
    logger.info("super_admin_promoted", extra={"user_id": user.id, "actor": actor.id})
    return user


def demote(db: Session, actor: User, user_id: int) -> User:
    ensure_not_self(actor, user_id, "You cannot modify your own super admin status")
    user = get_user_or_404(db, user_id)
    if not user.is_super_admin:
        raise ConflictError("User is not a super admin")
    remaining = db.query(User.id).filter(User.is_super_admin.is_(True)).with_for_update().all()
    if len(remaining) <= 1:
        raise ConflictError("Cannot demote the last super admin")
    user.is_super_admin = False
    db.commit()
    db.refresh(user)
    logger.info("super_admin_demoted", extra={"user_id": user.id, "actor": actor.id})
    return user


def set_active(db: Session, actor: User, user_id: int, active: bool) -> User:
    if not active:
        ensure_not_self(actor, user_id, "You cannot deactivate your own account")
    user = get_user_or_404(db, user_id)
    user.is_active = active
    db.commit()
    db.refresh(user)
    logger.info(
        "user_activated" if active else "user_deactivated",
        extra={"user_id": user.id, "actor": actor.id},
    )
    return user
