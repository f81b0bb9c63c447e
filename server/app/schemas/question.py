from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

from app.schemas.device import DeviceIdentity

QuestionStatus = Literal["new", "replied"]


class QuestionCreate(DeviceIdentity):
    masjid_id: int = Field(..., ge=1)
    user_name: str = Field(..., min_length=1, max_length=255)
    user_email: Optional[EmailStr] = None
    title: str = Field(..., min_length=1, max_length=255)
    question: str = Field(..., min_length=1)


class QuestionReply(BaseModel):
    reply: str = Field(..., min_length=1)


class QuestionOut(BaseModel):
    id: int
    masjid_id: int
    user_id: Optional[int] = None
    device_id: Optional[str] = None
    user_name: str
    user_email: Optional[str] = None
    title: str
    question: str
    status: QuestionStatus
    reply: Optional[str] = None
    replied_by_id: Optional[int] = None
    replied_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class QuestionListResponse(BaseModel):
    items: List[QuestionOut]
    total: int
    page: int
    page_size: int


class QuestionStatistics(BaseModel):
    total: int
    new: int
    replied: int
