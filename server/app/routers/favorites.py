from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.auth.deps import get_device_identity, get_optional_user
from app.core.config import settings
from app.core.db import get_db
from app.models.user import User
from app.schemas.device import DeviceIdentity
from app.schemas.favorite import FavoriteCreate, FavoriteListResponse, FavoriteOut
from app.services import favorites as favorite_service
from app.services.device_identity import resolve_recipient
from app.services.masjids import get_masjid_or_404

router = APIRouter(prefix="/users/favorites", tags=["favorites"])


@router.get("", response_model=FavoriteListResponse, status_code=status.HTTP_200_OK)
def list_favorites(
    device: DeviceIdentity = Depends(get_device_identity),
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
) -> FavoriteListResponse:
    recipient = resolve_recipient(user, device.device_id, device.platform, device.app_version)
    items = favorite_service.list_favorites(db, recipient)
    return FavoriteListResponse(
        items=[FavoriteOut.from_orm(item) for item in items],
        max_favorites=settings.MAX_FAVORITES,
    )


@router.post("", response_model=FavoriteOut, status_code=status.HTTP_201_CREATED)
def add_favorite(
    payload: FavoriteCreate,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
) -> FavoriteOut:
    recipient = resolve_recipient(user, payload.device_id, payload.platform, payload.app_version)
    masjid = get_masjid_or_404(db, payload.masjid_id)
    favorite = favorite_service.add_favorite(db, recipient, masjid.id, settings.MAX_FAVORITES)
    return FavoriteOut.from_orm(favorite)


@router.delete("/{masjid_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_favorite(
    masjid_id: int,
    device: DeviceIdentity = Depends(get_device_identity),
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
) -> None:
    recipient = resolve_recipient(user, device.device_id, device.platform, device.app_version)
    favorite_service.remove_favorite(db, recipient, masjid_id)
