from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.core.errors import ConflictError, NotFoundError, ValidationFailedError
from app.models.favorite import FavoriteMasjid
from app.services.device_identity import Recipient

logger = logging.getLogger(__name__)


def _owned_by(query, recipient: Recipient):
    if recipient.is_user:
        return query.filter(FavoriteMasjid.user_id == recipient.user_id)
    return query.filter(FavoriteMasjid.device_id == recipient.device_id, FavoriteMasjid.user_id.is_(None))


def list_favorites(db: Session, recipient: Recipient) -> list[FavoriteMasjid]:
    query = _owned_by(db.query(FavoriteMasjid), recipient)
    return list(query.order_by(FavoriteMasjid.created_at, FavoriteMasjid.id).all())


def add_favorite(db: Session, recipient: Recipient, masjid_id: int, limit: int) -> FavoriteMasjid:
    owned = _owned_by(db.query(FavoriteMasjid), recipient)
    if owned.filter(FavoriteMasjid.masjid_id == masjid_id).first() is not None:
        raise ConflictError("Masjid is already in favorites")
    if owned.count() >= limit:
        raise ValidationFailedError(f"Maximum favorites limit ({limit}) reached")
    favorite = FavoriteMasjid(masjid_id=masjid_id, user_id=recipient.user_id, device_id=recipient.device_id)
    db.add(favorite)
    db.commit()
    db.refresh(favorite)
    logger.info(
        "favorite_added",
        extra={"masjid_id": masjid_id, "user_id": recipient.user_id, "device_id": recipient.device_id},
    )
    return favorite


def remove_favorite(db: Session, recipient: Recipient, masjid_id: int) -> None:
    favorite = _owned_by(db.query(FavoriteMasjid), recipient).filter(FavoriteMasjid.masjid_id == masjid_id).first()
    if favorite is None:
        raise NotFoundError("Favorite", masjid_id)
    db.delete(favorite)
    db.commit()
    logger.info("favorite_removed", extra={"masjid_id": masjid_id, "user_id": recipient.user_id})
