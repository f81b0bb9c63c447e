from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.auth.deps import get_current_user
from app.core.db import get_db
from app.models.membership import MasjidMembership
from app.models.user import User
from app.schemas.auth import WhoAmIResponse

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/whoami", response_model=WhoAmIResponse)
def whoami(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> WhoAmIResponse:
    default = (
        db.query(MasjidMembership.masjid_id)
        .filter(MasjidMembership.user_id == user.id, MasjidMembership.is_default.is_(True))
        .first()
    )
    return WhoAmIResponse(
        id=user.id,
        user=user.email,
        full_name=user.full_name,
        is_super_admin=user.is_super_admin,
        default_masjid_id=default[0] if default else None,
    )
