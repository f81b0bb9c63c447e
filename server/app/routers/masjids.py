from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session, joinedload

from app.auth.deps import get_current_user, get_optional_user, require_masjid_permission
from app.core.db import get_db
from app.models.masjid import Masjid
from app.models.membership import MasjidMembership
from app.models.user import User
from app.schemas.masjid import MasjidCreate, MasjidListResponse, MasjidOut, MasjidUpdate
from app.schemas.membership import EffectivePermissions, MembershipOut
from app.services import masjids as masjid_service
from app.services import memberships as membership_service
from app.services import permissions
from app.services.permissions import RoleCheck

router = APIRouter(prefix="/masajids", tags=["masajids"])


@router.get("", response_model=MasjidListResponse, status_code=status.HTTP_200_OK)
def list_masajids(
    *,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    search: str | None = Query(None, min_length=1),
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
) -> MasjidListResponse:
    query = masjid_service.visible_masjids(db, user, search)
    total = query.count()
    items = (
        query.order_by(Masjid.created_at.desc(), Masjid.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return MasjidListResponse(
        items=[MasjidOut.from_orm(item) for item in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post("", response_model=MasjidOut, status_code=status.HTTP_201_CREATED)
def create_masjid(
    payload: MasjidCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> MasjidOut:
    masjid = masjid_service.create_masjid(db, user, payload.model_dump())
    return MasjidOut.from_orm(masjid)


@router.get("/{masjid_id}", response_model=MasjidOut, status_code=status.HTTP_200_OK)
def get_masjid(masjid_id: int, db: Session = Depends(get_db)) -> MasjidOut:
    return MasjidOut.from_orm(masjid_service.get_masjid_or_404(db, masjid_id))


@router.put("/{masjid_id}", response_model=MasjidOut, status_code=status.HTTP_200_OK)
def update_masjid(
    payload: MasjidUpdate,
    masjid: Masjid = Depends(require_masjid_permission(RoleCheck.MANAGE_MASJID)),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> MasjidOut:
    changes = payload.model_dump(exclude_unset=True)
    updated = masjid_service.update_masjid(db, masjid, changes, allow_status=user.is_super_admin)
    return MasjidOut.from_orm(updated)


@router.delete("/{masjid_id}", response_model=MasjidOut, status_code=status.HTTP_200_OK)
def deactivate_masjid(
    masjid: Masjid = Depends(require_masjid_permission(RoleCheck.MANAGE_MASJID)),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> MasjidOut:
    return MasjidOut.from_orm(masjid_service.deactivate_masjid(db, user, masjid))


@router.put("/{masjid_id}/set-default", response_model=MembershipOut, status_code=status.HTTP_200_OK)
def set_default_masjid(
    masjid_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> MembershipOut:
    masjid = masjid_service.get_masjid_or_404(db, masjid_id)
    membership = membership_service.set_default(db, user, masjid.id)
    return MembershipOut.from_orm(membership)


@router.get("/{masjid_id}/members", response_model=list[MembershipOut], status_code=status.HTTP_200_OK)
def list_members(
    masjid: Masjid = Depends(require_masjid_permission(RoleCheck.IS_MEMBER)),
    db: Session = Depends(get_db),
) -> list[MembershipOut]:
    rows = (
        db.query(MasjidMembership)
        .options(joinedload(MasjidMembership.user))
        .filter(MasjidMembership.masjid_id == masjid.id)
        .order_by(MasjidMembership.assigned_at, MasjidMembership.id)
        .all()
    )
    return [MembershipOut.from_orm(row) for row in rows]


@router.get("/{masjid_id}/permissions", response_model=EffectivePermissions, status_code=status.HTTP_200_OK)
def my_permissions(
    masjid_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> EffectivePermissions:
    masjid = masjid_service.get_masjid_or_404(db, masjid_id, include_inactive=user.is_super_admin)
    summary = permissions.effective_permissions(db, user, masjid.id)
    return EffectivePermissions(masjid_id=masjid.id, **summary)
