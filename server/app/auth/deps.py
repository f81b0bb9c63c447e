from typing import Callable

from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.db import get_db
from app.models.masjid import Masjid
from app.models.user import User
from app.schemas.device import DeviceIdentity, Platform
from app.services import permissions
from app.services.masjids import get_masjid_or_404

bearer_scheme = HTTPBearer(auto_error=False)


def _user_from_token(token: str, db: Session) -> User:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except JWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

    subject = payload.get("sub")
    if subject is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")

    user: User | None = None
    try:
        user = db.get(User, int(subject))
    except (TypeError, ValueError):
        user = None

    if user is None:
        user = db.query(User).filter(User.email == str(subject)).first()

    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Inactive user")
    return user


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return _user_from_token(credentials.credentials, db)


def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User | None:
    """Public routes accept anonymous callers, but a bad token is still rejected."""
    if not credentials:
        return None
    return _user_from_token(credentials.credentials, db)


def require_super_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_super_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Super Admin privileges required")
    return user


def require_masjid_permission(requirement: permissions.Requirement) -> Callable[..., Masjid]:
    """Resolve ``masjid_id`` from the path and check the caller against it.

    A missing masjid is a 404 before any permission is evaluated.
    """

    def checker(
        masjid_id: int,
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> Masjid:
        masjid = get_masjid_or_404(db, masjid_id, include_inactive=user.is_super_admin)
        permissions.ensure_permission(db, user, masjid.id, requirement)
        return masjid

    return checker


def get_device_identity(
    device_id: str | None = Query(None, min_length=1, max_length=255),
    platform: Platform | None = Query(None),
    app_version: str | None = Query(None, max_length=50),
) -> DeviceIdentity:
    return DeviceIdentity(device_id=device_id, platform=platform, app_version=app_version)
