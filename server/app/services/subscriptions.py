from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, NotFoundError, ValidationFailedError
from app.models.subscription import MasjidSubscription
from app.services.device_identity import Recipient

logger = logging.getLogger(__name__)


def mask_token(token: str | None) -> str:
    if not token:
        return ""
    if len(token) <= 12:
        return "***"
    return f"{token[:6]}...{token[-4:]}"


def _recipient_filter(query, recipient: Recipient):
    if recipient.is_user:
        return query.filter(MasjidSubscription.user_id == recipient.user_id)
    return query.filter(
        MasjidSubscription.device_id == recipient.device_id,
        MasjidSubscription.user_id.is_(None),
    )


def find_subscription(db: Session, masjid_id: int, recipient: Recipient) -> MasjidSubscription | None:
    query = db.query(MasjidSubscription).filter(MasjidSubscription.masjid_id == masjid_id)
    return _recipient_filter(query, recipient).order_by(MasjidSubscription.id).first()


def subscribe(db: Session, masjid_id: int, recipient: Recipient, fcm_token: str | None) -> MasjidSubscription:
    """Create or reactivate the (masjid, recipient) subscription."""

    token = fcm_token.strip() if fcm_token else None
    token = token or None
    subscription = find_subscription(db, masjid_id, recipient)
    if subscription is not None:
        if subscription.is_active and (token is None or subscription.fcm_token == token):
            raise ConflictError("Already subscribed to this masjid")
        action = "token_updated" if subscription.is_active else "reactivated"
        subscription.is_active = True
        if token is not None:
            subscription.fcm_token = token
    else:
        subscription = MasjidSubscription(
            masjid_id=masjid_id,
            user_id=recipient.user_id,
            device_id=recipient.device_id,
            fcm_token=token,
            is_active=True,
        )
        db.add(subscription)
        action = "created"
    db.commit()
    db.refresh(subscription)
    logger.info(
        "masjid_subscription_saved",
        extra={
            "masjid_id": masjid_id,
            "subscription_id": subscription.id,
            "recipient_kind": "user" if recipient.is_user else "device",
            "action": action,
            "token": mask_token(subscription.fcm_token),
        },
    )
    return subscription


def unsubscribe(db: Session, masjid_id: int, recipient: Recipient) -> MasjidSubscription:
    subscription = find_subscription(db, masjid_id, recipient)
    if subscription is None:
        raise NotFoundError("Subscription", masjid_id)
    if not subscription.is_active:
        raise ConflictError("Already unsubscribed from this masjid")
    subscription.is_active = False
    db.commit()
    db.refresh(subscription)
    logger.info("masjid_subscription_deactivated", extra={"masjid_id": masjid_id, "subscription_id": subscription.id})
    return subscription


def list_for_recipient(db: Session, recipient: Recipient) -> list[MasjidSubscription]:
    query = db.query(MasjidSubscription).filter(MasjidSubscription.is_active.is_(True))
    return list(_recipient_filter(query, recipient).order_by(MasjidSubscription.id).all())


def list_for_masjid(db: Session, masjid_id: int) -> list[MasjidSubscription]:
    return list(
        db.query(MasjidSubscription)
        .filter(MasjidSubscription.masjid_id == masjid_id, MasjidSubscription.is_active.is_(True))
        .order_by(MasjidSubscription.id)
        .all()
    )


def register_device_token(db: Session, device_id: str, fcm_token: str) -> int:
    """Refresh the push token on every anonymous subscription of a device."""

    token = (fcm_token or "").strip()
    if not token:
        raise ValidationFailedError("FCM token is required")
    result = db.execute(
        update(MasjidSubscription)
        .where(MasjidSubscription.device_id == device_id, MasjidSubscription.user_id.is_(None))
        .values(fcm_token=token)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    logger.info(
        "device_token_registered",
        extra={"device_id": device_id, "updated": result.rowcount, "token": mask_token(token)},
    )
    return result.rowcount or 0


def deactivate_invalid_tokens(db: Session, masjid_id: int | None, tokens: Iterable[str]) -> int:
    """Deactivate active subscriptions holding any of ``tokens``.

    Already inactive rows are left untouched, so repeating the call with the
    same tokens changes nothing. ``masjid_id=None`` reconciles across masjids.
    """

    token_list = sorted({token for token in tokens if token})
    if not token_list:
        return 0
    statement = update(MasjidSubscription).where(
        MasjidSubscription.fcm_token.in_(token_list),
        MasjidSubscription.is_active.is_(True),
    )
    if masjid_id is not None:
        statement = statement.where(MasjidSubscription.masjid_id == masjid_id)
    result = db.execute(statement.values(is_active=False).execution_options(synchronize_session=False))
    db.commit()
    deactivated = result.rowcount or 0
    logger.info(
        "invalid_tokens_reconciled",
        extra={"masjid_id": masjid_id, "tokens": len(token_list), "deactivated": deactivated},
    )
    return deactivated
