from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Mapping

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationFailedError
from app.models.masjid import Masjid
from app.models.membership import CAPABILITY_FIELDS, MasjidMembership
from app.models.user import User
from app.services import permissions
from app.services.permissions import Role

logger = logging.getLogger(__name__)

LAST_ADMIN_REMOVE_MESSAGE = "Cannot remove the last admin. Please add another admin first."
LAST_ADMIN_DEMOTE_MESSAGE = "Cannot change role of the last admin"


def default_capabilities(role: Role | str) -> dict[str, bool]:
    """Capability bits a freshly created membership starts with.

    Admins get everything; imams get everything except the complaint handling
    bits.
    """

    role = Role(role)
    is_admin = role is Role.ADMIN
    values = {field: True for field in CAPABILITY_FIELDS}
    values["can_view_complaints"] = is_admin
    values["can_answer_complaints"] = is_admin
    return values


def build_membership(
    *,
    user_id: int,
    masjid_id: int,
    role: Role | str,
    assigned_by_id: int | None = None,
    overrides: Mapping[str, bool | None] | None = None,
    is_default: bool = False,
) -> MasjidMembership:
    """The only constructor for membership rows; every capability is always seeded."""

    try:
        role = Role(role)
    except ValueError as exc:
        raise ValidationFailedError("Role must be either imam or admin") from exc
    capabilities = default_capabilities(role)
    for field, value in (overrides or {}).items():
        if field not in capabilities:
            raise ValidationFailedError(f"Unknown capability: {field}")
        if value is not None:
            capabilities[field] = bool(value)
    return MasjidMembership(
        user_id=user_id,
        masjid_id=masjid_id,
        role=role.value,
        assigned_by_id=assigned_by_id,
        is_default=is_default,
        assigned_at=datetime.now(timezone.utc),
        **capabilities,
    )


def _has_any_membership(db: Session, user_id: int) -> bool:
    return db.query(MasjidMembership.id).filter(MasjidMembership.user_id == user_id).first() is not None


def add_member(
    db: Session,
    actor: User,
    masjid: Masjid,
    *,
    user_id: int,
    role: str,
    overrides: Mapping[str, bool | None] | None = None,
) -> MasjidMembership:
    permissions.ensure_not_self(actor, user_id, "You cannot add yourself to a masjid")
    permissions.ensure_permission(db, actor, masjid.id, permissions.RoleCheck.MANAGE_USERS)

    target = db.get(User, user_id)
    if target is None:
        raise NotFoundError("User", user_id)

    existing = (
        db.query(MasjidMembership)
        .filter(
            MasjidMembership.user_id == user_id,
            MasjidMembership.masjid_id == masjid.id,
            MasjidMembership.role == role,
        )
        .first()
    )
    if existing is not None:
        raise ConflictError(f"User is already {role} of this masjid")

    membership = build_membership(
        user_id=user_id,
        masjid_id=masjid.id,
        role=role,
        assigned_by_id=actor.id,
        overrides=overrides,
        is_default=not _has_any_membership(db, user_id),
    )
    db.add(membership)
    db.commit()
    db.refresh(membership)
    logger.info(
        "masjid_member_added",
        extra={"masjid_id": masjid.id, "user_id": user_id, "role": membership.role, "assigned_by": actor.id},
    )
    return membership


def change_role(db: Session, actor: User, masjid: Masjid, *, user_id: int, new_role: str) -> MasjidMembership:
    """Move a member's row to ``new_role``; capability bits travel with the row."""

    permissions.ensure_not_self(actor, user_id, "You cannot modify your own role")
    permissions.ensure_permission(db, actor, masjid.id, permissions.RoleCheck.MANAGE_USERS)
    try:
        target_role = Role(new_role)
    except ValueError as exc:
        raise ValidationFailedError("Role must be either imam or admin") from exc

    rows = permissions.load_memberships(db, user_id, masjid.id, lock=True)
    if not rows:
        raise NotFoundError("Membership", user_id)
    if permissions.has_role(rows, target_role):
        raise ConflictError(f"User already has {target_role.value} role for this masjid")

    membership = rows[0]
    if membership.role == Role.ADMIN.value and target_role is Role.IMAM:
        permissions.ensure_not_last_admin(db, masjid.id, LAST_ADMIN_DEMOTE_MESSAGE)

    previous = membership.role
    membership.role = target_role.value
    membership.assigned_by_id = actor.id
    db.commit()
    db.refresh(membership)
    logger.info(
        "masjid_member_role_changed",
        extra={"masjid_id": masjid.id, "user_id": user_id, "old_role": previous, "new_role": membership.role},
    )
    return membership


def update_capabilities(
    db: Session,
    actor: User,
    masjid: Masjid,
    *,
    user_id: int,
    role: str,
    changes: Mapping[str, bool | None],
) -> MasjidMembership:
    permissions.ensure_not_self(actor, user_id, "You cannot modify your own permissions")
    permissions.ensure_permission(db, actor, masjid.id, permissions.RoleCheck.MANAGE_USERS)

    membership = (
        db.query(MasjidMembership)
        .filter(
            MasjidMembership.user_id == user_id,
            MasjidMembership.masjid_id == masjid.id,
            MasjidMembership.role == role,
        )
        .first()
    )
    if membership is None:
        raise NotFoundError("Membership", user_id)

    applied: dict[str, bool] = {}
    for field, value in changes.items():
        if field not in CAPABILITY_FIELDS:
            raise ValidationFailedError(f"Unknown capability: {field}")
        if value is None:
            continue
        setattr(membership, field, bool(value))
        applied[field] = bool(value)
    db.commit()
    db.refresh(membership)
    logger.info(
        "masjid_member_capabilities_updated",
        extra={"masjid_id": masjid.id, "user_id": user_id, "role": role, "changes": applied},
    )
    return membership


def _promote_replacement_default(db: Session, user_id: int) -> None:
    if db.query(MasjidMembership.id).filter(
        MasjidMembership.user_id == user_id, MasjidMembership.is_default.is_(True)
    ).first():
        return
    replacement = (
        db.query(MasjidMembership)
        .filter(MasjidMembership.user_id == user_id)
        .order_by(MasjidMembership.assigned_at, MasjidMembership.id)
        .first()
    )
    if replacement is not None:
        replacement.is_default = True


def remove_role(db: Session, actor: User, masjid: Masjid, *, user_id: int, role: str) -> None:
    permissions.ensure_not_self(actor, user_id, "You cannot remove yourself from a masjid")
    permissions.ensure_permission(db, actor, masjid.id, permissions.RoleCheck.MANAGE_USERS)

    rows = permissions.load_memberships(db, user_id, masjid.id, lock=True)
    membership = next((row for row in rows if row.role == role), None)
    if membership is None:
        raise NotFoundError("Membership", user_id)
    if membership.role == Role.ADMIN.value:
        permissions.ensure_not_last_admin(db, masjid.id, LAST_ADMIN_REMOVE_MESSAGE)

    db.delete(membership)
    db.flush()
    _promote_replacement_default(db, user_id)
    db.commit()
    logger.info("masjid_member_role_removed", extra={"masjid_id": masjid.id, "user_id": user_id, "role": role})


def remove_member(db: Session, actor: User, masjid: Masjid, *, user_id: int) -> int:
    """Delete every membership row the user holds for the masjid."""

    permissions.ensure_not_self(
        actor,
        user_id,
        "You cannot remove yourself from a masjid. Please transfer ownership first or ask another admin.",
    )
    permissions.ensure_permission(db, actor, masjid.id, permissions.RoleCheck.MANAGE_USERS)

    rows = permissions.load_memberships(db, user_id, masjid.id, lock=True)
    if not rows:
        raise NotFoundError("Membership", user_id)
    if permissions.has_role(rows, Role.ADMIN):
        permissions.ensure_not_last_admin(db, masjid.id, LAST_ADMIN_REMOVE_MESSAGE)

    for row in rows:
        db.delete(row)
    db.flush()
    _promote_replacement_default(db, user_id)
    db.commit()
    logger.info("masjid_member_removed", extra={"masjid_id": masjid.id, "user_id": user_id, "rows": len(rows)})
    return len(rows)


def set_default(db: Session, user: User, masjid_id: int) -> MasjidMembership:
    """Make ``masjid_id`` the user's default masjid in a single transaction."""

    rows = (
        db.query(MasjidMembership)
        .filter(MasjidMembership.user_id == user.id)
        .order_by(MasjidMembership.id)
        .with_for_update()
        .all()
    )
    target = next((row for row in rows if row.masjid_id == masjid_id), None)
    if target is None:
        raise ForbiddenError("You are not a member of this masjid")

    db.execute(
        update(MasjidMembership)
        .where(MasjidMembership.user_id == user.id, MasjidMembership.id != target.id)
        .values(is_default=False)
    )
    target.is_default = True
    db.commit()
    db.refresh(target)
    logger.info("default_masjid_set", extra={"user_id": user.id, "masjid_id": masjid_id})
    return target


def list_members(db: Session, masjid_id: int, role: str | None = None) -> list[MasjidMembership]:
    query = db.query(MasjidMembership).filter(MasjidMembership.masjid_id == masjid_id)
    if role is not None:
        query = query.filter(MasjidMembership.role == role)
    return list(query.order_by(MasjidMembership.assigned_at, MasjidMembership.id).all())


def staff_user_ids(db: Session, masjid_id: int, capability: str) -> list[int]:
    """Distinct ids of members holding ``capability`` on the masjid."""

    column = getattr(MasjidMembership, capability)
    rows = (
        db.query(MasjidMembership.user_id)
        .filter(MasjidMembership.masjid_id == masjid_id, column.is_(True))
        .distinct()
        .all()
    )
    return [row[0] for row in rows]
