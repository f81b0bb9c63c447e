from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.auth.deps import get_device_identity, get_optional_user, require_masjid_permission
from app.core.db import get_db
from app.core.errors import ValidationFailedError
from app.models.masjid import Masjid
from app.models.user import User
from app.schemas.device import DeviceIdentity
from app.schemas.subscription import (
    RegisterDeviceRequest,
    RegisterDeviceResponse,
    SubscribeRequest,
    SubscriptionListResponse,
    SubscriptionOut,
    UnsubscribeRequest,
)
from app.services import subscriptions as subscription_service
from app.services.device_identity import derive_device_id, resolve_recipient
from app.services.masjids import get_masjid_or_404
from app.services.permissions import RoleCheck

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.post("", response_model=SubscriptionOut, status_code=status.HTTP_200_OK)
def subscribe(
    payload: SubscribeRequest,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
) -> SubscriptionOut:
    recipient = resolve_recipient(user, payload.device_id, payload.platform, payload.app_version)
    masjid = get_masjid_or_404(db, payload.masjid_id)
    subscription = subscription_service.subscribe(db, masjid.id, recipient, payload.fcm_token)
    return SubscriptionOut.from_orm(subscription)


@router.post("/unsubscribe", response_model=SubscriptionOut, status_code=status.HTTP_200_OK)
def unsubscribe(
    payload: UnsubscribeRequest,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
) -> SubscriptionOut:
    recipient = resolve_recipient(user, payload.device_id, payload.platform, payload.app_version)
    subscription = subscription_service.unsubscribe(db, payload.masjid_id, recipient)
    return SubscriptionOut.from_orm(subscription)


@router.get("", response_model=SubscriptionListResponse, status_code=status.HTTP_200_OK)
def list_my_subscriptions(
    device: DeviceIdentity = Depends(get_device_identity),
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
) -> SubscriptionListResponse:
    recipient = resolve_recipient(user, device.device_id, device.platform, device.app_version)
    items = subscription_service.list_for_recipient(db, recipient)
    return SubscriptionListResponse(items=[SubscriptionOut.from_orm(item) for item in items], total=len(items))


@router.get("/masjid/{masjid_id}", response_model=SubscriptionListResponse, status_code=status.HTTP_200_OK)
def list_masjid_subscriptions(
    masjid: Masjid = Depends(require_masjid_permission(RoleCheck.IS_IMAM_OR_ADMIN)),
    db: Session = Depends(get_db),
) -> SubscriptionListResponse:
    items = subscription_service.list_for_masjid(db, masjid.id)
    return SubscriptionListResponse(items=[SubscriptionOut.from_orm(item) for item in items], total=len(items))


@router.post("/register-device", response_model=RegisterDeviceResponse, status_code=status.HTTP_200_OK)
def register_device(payload: RegisterDeviceRequest, db: Session = Depends(get_db)) -> RegisterDeviceResponse:
    if not payload.device_id or not payload.platform:
        raise ValidationFailedError("deviceId and platform are required")
    device_id = derive_device_id(payload.device_id, payload.platform, payload.app_version)
    updated = subscription_service.register_device_token(db, device_id, payload.fcm_token)
    return RegisterDeviceResponse(device_id=device_id, updated=updated)
