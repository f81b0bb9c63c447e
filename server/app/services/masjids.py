from __future__ import annotations

import logging
from typing import Any, Mapping

from sqlalchemy import func, or_, update
from sqlalchemy.orm import Query, Session

from app.core.errors import NotFoundError, ValidationFailedError
from app.models.masjid import Masjid
from app.models.membership import CAPABILITY_FIELDS, MasjidMembership
from app.models.user import User
from app.services.memberships import build_membership
from app.services.permissions import Role

logger = logging.getLogger(__name__)

MASJID_FIELDS = (
    "name",
    "location",
    "address",
    "city",
    "state",
    "country",
    "postal_code",
    "contact_email",
    "contact_phone",
)


def get_masjid_or_404(db: Session, masjid_id: int, *, include_inactive: bool = False) -> Masjid:
    masjid = db.get(Masjid, masjid_id)
    if masjid is None or (not include_inactive and masjid.status != "active"):
        raise NotFoundError("Masjid", masjid_id)
    return masjid


def create_masjid(db: Session, creator: User, values: Mapping[str, Any]) -> Masjid:
    """Create the masjid and make its creator the first admin, atomically."""

    masjid = Masjid(created_by_id=creator.id, status="active")
    for field in MASJID_FIELDS:
        if field in values:
            setattr(masjid, field, values[field])
    try:
        db.add(masjid)
        db.flush()
        db.execute(
            update(MasjidMembership)
            .where(MasjidMembership.user_id == creator.id)
            .values(is_default=False)
            .execution_options(synchronize_session=False)
        )
        db.add(
            build_membership(
                user_id=creator.id,
                masjid_id=masjid.id,
                role=Role.ADMIN,
                assigned_by_id=creator.id,
                overrides={field: True for field in CAPABILITY_FIELDS},
                is_default=True,
            )
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(masjid)
    logger.info("masjid_created", extra={"masjid_id": masjid.id, "created_by": creator.id})
    return masjid


def update_masjid(db: Session, masjid: Masjid, changes: Mapping[str, Any], *, allow_status: bool = False) -> Masjid:
    for field, value in changes.items():
        if field in MASJID_FIELDS:
            setattr(masjid, field, value)
        elif field == "status" and value is not None:
            if not allow_status:
                raise ValidationFailedError("Only super admins can change a masjid's status")
            masjid.status = value
    db.commit()
    db.refresh(masjid)
    logger.info("masjid_updated", extra={"masjid_id": masjid.id, "fields": sorted(changes)})
    return masjid


def deactivate_masjid(db: Session, actor: User, masjid: Masjid) -> Masjid:
    masjid.status = "inactive"
    db.commit()
    db.refresh(masjid)
    logger.info("masjid_deactivated", extra={"masjid_id": masjid.id, "deactivated_by": actor.id})
    return masjid


def transfer_ownership(db: Session, actor: User, masjid: Masjid, new_owner_id: int) -> Masjid:
    new_owner = db.get(User, new_owner_id)
    if new_owner is None:
        raise NotFoundError("User", new_owner_id)
    is_admin = (
        db.query(MasjidMembership.id)
        .filter(
            MasjidMembership.user_id == new_owner_id,
            MasjidMembership.masjid_id == masjid.id,
            MasjidMembership.role == Role.ADMIN.value,
        )
        .first()
    )
    if is_admin is None:
        raise ValidationFailedError("New admin must already be an admin of this masjid")
    previous = masjid.created_by_id
    masjid.created_by_id = new_owner_id
    db.commit()
    db.refresh(masjid)
    logger.info(
        "masjid_ownership_transferred",
        extra={"masjid_id": masjid.id, "from_user": previous, "to_user": new_owner_id, "actor": actor.id},
    )
    return masjid


def visible_masjids(db: Session, user: User | None, search: str | None = None) -> Query:
    """Active masjids; a signed-in non-super-admin only sees the ones they staff."""

    query = db.query(Masjid).filter(Masjid.status == "active")
    if user is not None and not user.is_super_admin:
        member_of = db.query(MasjidMembership.masjid_id).filter(MasjidMembership.user_id == user.id)
        query = query.filter(Masjid.id.in_(member_of.scalar_subquery()))
    if search:
        like = f"%{search.strip().lower()}%"
        query = query.filter(
            or_(
                func.lower(Masjid.name).like(like),
                func.lower(func.coalesce(Masjid.city, "")).like(like),
                func.lower(func.coalesce(Masjid.location, "")).like(like),
            )
        )
    return query
