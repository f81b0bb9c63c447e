from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.auth.deps import require_super_admin
from app.core.db import get_db
from app.models.user import User
from app.schemas.notification import ImamBroadcastRequest
from app.schemas.user import UserListResponse, UserOut
from app.services import super_admin as super_admin_service
from app.services.dispatch import NotificationDispatcher, get_dispatcher
from app.services.masjids import get_masjid_or_404

router = APIRouter(prefix="/super-admin", tags=["super-admin"])


@router.get("/users", response_model=UserListResponse, status_code=status.HTTP_200_OK)
def list_users(
    *,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    search: str | None = Query(None, min_length=1),
    is_active: bool | None = Query(None),
    db: Session = Depends(get_db),
    _: User = Depends(require_super_admin),
) -> UserListResponse:
    query = db.query(User)
    if search:
        like = f"%{search.strip().lower()}%"
        query = query.filter(
            or_(func.lower(User.email).like(like), func.lower(func.coalesce(User.full_name, "")).like(like))
        )
    if is_active is not None:
        query = query.filter(User.is_active.is_(is_active))
    total = query.count()
    items = query.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * page_size).limit(page_size).all()
    return UserListResponse(
        items=[UserOut.from_orm(item) for item in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/list", response_model=list[UserOut], status_code=status.HTTP_200_OK)
def list_super_admins(
    db: Session = Depends(get_db),
    _: User = Depends(require_super_admin),
) -> list[UserOut]:
    admins = db.query(User).filter(User.is_super_admin.is_(True)).order_by(User.id).all()
    return [UserOut.from_orm(admin) for admin in admins]


@router.get("/users/{user_id}", response_model=UserOut, status_code=status.HTTP_200_OK)
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_super_admin),
) -> UserOut:
    return UserOut.from_orm(super_admin_service.get_user_or_404(db, user_id))


@router.put("/users/{user_id}/promote", response_model=UserOut, status_code=status.HTTP_200_OK)
def promote_user(
    user_id: int,
    db: Session = Depends(get_db),
    actor: User = Depends(require_super_admin),
) -> UserOut:
    return UserOut.from_orm(super_admin_service.promote(db, actor, user_id))


@router.put("/users/{user_id}/demote", response_model=UserOut, status_code=status.HTTP_200_OK)
def demote_user(
    user_id: int,
    db: Session = Depends(get_db),
    actor: User = Depends(require_super_admin),
) -> UserOut:
    return UserOut.from_orm(super_admin_service.demote(db, actor, user_id))


@router.put("/users/{user_id}/activate", response_model=UserOut, status_code=status.HTTP_200_OK)
def activate_user(
    user_id: int,
    db: Session = Depends(get_db),
    actor: User = Depends(require_super_admin),
) -> UserOut:
    return UserOut.from_orm(super_admin_service.set_active(db, actor, user_id, True))


@router.put("/users/{user_id}/deactivate", response_model=UserOut, status_code=status.HTTP_200_OK)
def deactivate_user(
    user_id: int,
    db: Session = Depends(get_db),
    actor: User = Depends(require_super_admin),
) -> UserOut:
    return UserOut.from_orm(super_admin_service.set_active(db, actor, user_id, False))


@router.post("/notifications/send-to-imams", status_code=status.HTTP_202_ACCEPTED)
def send_to_imams(
    payload: ImamBroadcastRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    _: User = Depends(require_super_admin),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> dict:
    if payload.masjid_id is not None:
        get_masjid_or_404(db, payload.masjid_id, include_inactive=True)
    background_tasks.add_task(
        dispatcher.imams_broadcast,
        payload.title.strip(),
        payload.body.strip(),
        {"type": "super_admin_broadcast"},
        payload.masjid_id,
    )
    return {"status": "queued", "masjid_id": payload.masjid_id}
