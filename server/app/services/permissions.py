"""Permission resolution for masjid-scoped actions.

Decisions are made from the stored membership rows only: role labels gate the
coarse checks, capability bits gate the fine-grained ones, and a super-admin
passes everything. Capability defaults are applied when a membership is
created (see ``app.services.memberships.build_membership``), never here.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Iterable, Sequence, Union

from sqlalchemy.orm import Session

from app.core.errors import ForbiddenError
from app.models.membership import CAPABILITY_FIELDS, MasjidMembership
from app.models.user import User

logger = logging.getLogger(__name__)


class Role(str, enum.Enum):
    IMAM = "imam"
    ADMIN = "admin"


class Capability(str, enum.Enum):
    VIEW_COMPLAINTS = "can_view_complaints"
    ANSWER_COMPLAINTS = "can_answer_complaints"
    VIEW_QUESTIONS = "can_view_questions"
    ANSWER_QUESTIONS = "can_answer_questions"
    CHANGE_PRAYER_TIMES = "can_change_prayer_times"
    CREATE_EVENTS = "can_create_events"
    CREATE_NOTIFICATIONS = "can_create_notifications"


class RoleCheck(str, enum.Enum):
    IS_MEMBER = "is_member"
    IS_IMAM = "is_imam"
    IS_ADMIN = "is_admin"
    IS_IMAM_OR_ADMIN = "is_imam_or_admin"
    # Both management actions reduce to "is admin" and ignore capability bits.
    MANAGE_MASJID = "manage_masjid"
    MANAGE_USERS = "manage_users"


Requirement = Union[Capability, RoleCheck]

_ROLE_REQUIREMENTS: dict[RoleCheck, tuple[frozenset[str], str]] = {
    RoleCheck.IS_MEMBER: (frozenset({Role.IMAM.value, Role.ADMIN.value}), "Not a member of this masjid"),
    RoleCheck.IS_IMAM_OR_ADMIN: (frozenset({Role.IMAM.value, Role.ADMIN.value}), "Imam or admin role required"),
    RoleCheck.IS_IMAM: (frozenset({Role.IMAM.value}), "Imam role required"),
    RoleCheck.IS_ADMIN: (frozenset({Role.ADMIN.value}), "Admin role required"),
    RoleCheck.MANAGE_MASJID: (frozenset({Role.ADMIN.value}), "Only masjid admins can manage this masjid"),
    RoleCheck.MANAGE_USERS: (frozenset({Role.ADMIN.value}), "Only masjid admins can manage users"),
}


@dataclass(frozen=True)
class PermissionDecision:
    allowed: bool
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = PermissionDecision(True)


def decide(
    actor: User | None,
    memberships: Sequence[MasjidMembership],
    requirement: Requirement,
) -> PermissionDecision:
    """Pure decision over the actor and their membership rows for one masjid."""

    if actor is None:
        return PermissionDecision(False, "Authentication required")
    if actor.is_super_admin:
        return ALLOW
    if not memberships:
        return PermissionDecision(False, "Not a member of this masjid")

    if isinstance(requirement, RoleCheck):
        roles, reason = _ROLE_REQUIREMENTS[requirement]
        if any(row.role in roles for row in memberships):
            return ALLOW
        return PermissionDecision(False, reason)

    if any(bool(getattr(row, requirement.value)) for row in memberships):
        return ALLOW
    return PermissionDecision(False, f"Missing permission: {requirement.value}")


def load_memberships(
    db: Session,
    user_id: int,
    masjid_id: int,
    *,
    lock: bool = False,
) -> list[MasjidMembership]:
    query = db.query(MasjidMembership).filter(
        MasjidMembership.user_id == user_id,
        MasjidMembership.masjid_id == masjid_id,
    )
    if lock:
        query = query.with_for_update()
    return list(query.order_by(MasjidMembership.id).all())


def check_permission(
    db: Session,
    actor: User | None,
    masjid_id: int,
    requirement: Requirement,
) -> PermissionDecision:
    if actor is None:
        return decide(None, [], requirement)
    if actor.is_super_admin:
        return ALLOW
    return decide(actor, load_memberships(db, actor.id, masjid_id), requirement)


def ensure_permission(
    db: Session,
    actor: User | None,
    masjid_id: int,
    requirement: Requirement,
) -> None:
    decision = check_permission(db, actor, masjid_id, requirement)
    if not decision.allowed:
        logger.info(
            "permission_denied",
            extra={
                "user_id": actor.id if actor else None,
                "masjid_id": masjid_id,
                "requirement": requirement.value,
                "reason": decision.reason,
            },
        )
        raise ForbiddenError(decision.reason or "Not authorized")


def effective_permissions(db: Session, actor: User, masjid_id: int) -> dict[str, object]:
    """Roles and capability flags the actor effectively holds on a masjid.

    A capability is granted when any of the actor's rows grants it.
    """

    if actor.is_super_admin:
        return {
            "roles": [role.value for role in Role],
            "is_super_admin": True,
            "permissions": {field: True for field in CAPABILITY_FIELDS},
        }
    rows = load_memberships(db, actor.id, masjid_id)
    return {
        "roles": sorted({row.role for row in rows}),
        "is_super_admin": False,
        "permissions": {field: any(bool(getattr(row, field)) for row in rows) for field in CAPABILITY_FIELDS},
    }


def count_admins(db: Session, masjid_id: int, *, lock: bool = False) -> int:
    # Aggregates cannot carry FOR UPDATE on postgres, so lock and count the rows themselves.
    query = db.query(MasjidMembership.id).filter(
        MasjidMembership.masjid_id == masjid_id,
        MasjidMembership.role == Role.ADMIN.value,
    )
    if lock:
        query = query.with_for_update()
    return len(query.all())


def ensure_not_last_admin(db: Session, masjid_id: int, message: str) -> None:
    """Reject a mutation that would leave the masjid without an admin.

    Must run inside the transaction that performs the demotion or removal.
    """

    if count_admins(db, masjid_id, lock=True) <= 1:
        logger.info("last_admin_protected", extra={"masjid_id": masjid_id})
        raise ForbiddenError(message)


def ensure_not_self(actor: User, target_user_id: int, message: str) -> None:
    if actor.id == target_user_id:
        raise ForbiddenError(message)


def has_role(rows: Iterable[MasjidMembership], role: Role) -> bool:
    return any(row.role == role.value for row in rows)
