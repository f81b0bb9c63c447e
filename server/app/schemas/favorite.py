from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field

from app.schemas.device import DeviceIdentity
from app.schemas.masjid import MasjidOut


class FavoriteCreate(DeviceIdentity):
    masjid_id: int = Field(..., ge=1)


class FavoriteOut(BaseModel):
    id: int
    masjid_id: int
    created_at: datetime
    masjid: MasjidOut

    class Config:
        from_attributes = True


class FavoriteListResponse(BaseModel):
    items: List[FavoriteOut]
    max_favorites: int
