from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.auth.deps import get_current_user, require_masjid_permission
from app.core.db import get_db
from app.models.masjid import Masjid
from app.models.user import User
from app.schemas.masjid import MasjidOut, TransferOwnershipRequest
from app.schemas.membership import (
    CapabilityUpdate,
    MemberRemovalResult,
    MembershipCreate,
    MembershipOut,
    RoleChangeRequest,
)
from app.services import masjids as masjid_service
from app.services import memberships as membership_service
from app.services.masjids import get_masjid_or_404
from app.services.permissions import RoleCheck

router = APIRouter(prefix="/masajids", tags=["masjid-users"])


def _active_masjid(masjid_id: int, db: Session = Depends(get_db)) -> Masjid:
    # Membership mutations run their own self-guard before the permission check.
    return get_masjid_or_404(db, masjid_id)


@router.post("/{masjid_id}/users", response_model=MembershipOut, status_code=status.HTTP_201_CREATED)
def add_user(
    payload: MembershipCreate,
    masjid: Masjid = Depends(_active_masjid),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> MembershipOut:
    overrides = payload.model_dump(exclude={"user_id", "role"}, exclude_none=True)
    membership = membership_service.add_member(
        db, user, masjid, user_id=payload.user_id, role=payload.role, overrides=overrides
    )
    return MembershipOut.from_orm(membership)


@router.delete("/{masjid_id}/users/{user_id}", response_model=MemberRemovalResult, status_code=status.HTTP_200_OK)
def remove_user(
    user_id: int,
    masjid: Masjid = Depends(_active_masjid),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> MemberRemovalResult:
    removed = membership_service.remove_member(db, user, masjid, user_id=user_id)
    return MemberRemovalResult(user_id=user_id, removed=removed)


@router.delete("/{masjid_id}/users/{user_id}/roles/{role}", status_code=status.HTTP_204_NO_CONTENT)
def remove_user_role(
    user_id: int,
    role: str,
    masjid: Masjid = Depends(_active_masjid),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> None:
    membership_service.remove_role(db, user, masjid, user_id=user_id, role=role)


@router.put("/{masjid_id}/users/{user_id}/role", response_model=MembershipOut, status_code=status.HTTP_200_OK)
def change_user_role(
    user_id: int,
    payload: RoleChangeRequest,
    masjid: Masjid = Depends(_active_masjid),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> MembershipOut:
    membership = membership_service.change_role(db, user, masjid, user_id=user_id, new_role=payload.role)
    return MembershipOut.from_orm(membership)


@router.put("/{masjid_id}/users/{user_id}/permissions", response_model=MembershipOut, status_code=status.HTTP_200_OK)
def update_user_permissions(
    user_id: int,
    payload: CapabilityUpdate,
    masjid: Masjid = Depends(_active_masjid),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> MembershipOut:
    membership = membership_service.update_capabilities(
        db,
        user,
        masjid,
        user_id=user_id,
        role=payload.role,
        changes=payload.model_dump(exclude={"role"}, exclude_none=True),
    )
    return MembershipOut.from_orm(membership)


@router.get("/{masjid_id}/imams", response_model=list[MembershipOut], status_code=status.HTTP_200_OK)
def list_imams(
    masjid: Masjid = Depends(require_masjid_permission(RoleCheck.IS_MEMBER)),
    db: Session = Depends(get_db),
) -> list[MembershipOut]:
    return [MembershipOut.from_orm(row) for row in membership_service.list_members(db, masjid.id, "imam")]


@router.get("/{masjid_id}/admins", response_model=list[MembershipOut], status_code=status.HTTP_200_OK)
def list_admins(
    masjid: Masjid = Depends(require_masjid_permission(RoleCheck.IS_MEMBER)),
    db: Session = Depends(get_db),
) -> list[MembershipOut]:
    return [MembershipOut.from_orm(row) for row in membership_service.list_members(db, masjid.id, "admin")]


@router.post("/{masjid_id}/transfer-ownership", response_model=MasjidOut, status_code=status.HTTP_200_OK)
def transfer_ownership(
    payload: TransferOwnershipRequest,
    masjid: Masjid = Depends(require_masjid_permission(RoleCheck.MANAGE_MASJID)),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> MasjidOut:
    return MasjidOut.from_orm(masjid_service.transfer_ownership(db, user, masjid, payload.new_owner_id))
