from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from app.schemas.user import UserSummary

MembershipRole = Literal["imam", "admin"]


class CapabilityFlags(BaseModel):
    can_view_complaints: Optional[bool] = None
    can_answer_complaints: Optional[bool] = None
    can_view_questions: Optional[bool] = None
    can_answer_questions: Optional[bool] = None
    can_change_prayer_times: Optional[bool] = None
    can_create_events: Optional[bool] = None
    can_create_notifications: Optional[bool] = None


class MembershipCreate(CapabilityFlags):
    user_id: int = Field(..., ge=1)
    role: MembershipRole


class RoleChangeRequest(BaseModel):
    role: MembershipRole


class CapabilityUpdate(CapabilityFlags):
    role: MembershipRole


class MembershipOut(BaseModel):
    id: int
    user_id: int
    masjid_id: int
    role: MembershipRole
    can_view_complaints: bool
    can_answer_complaints: bool
    can_view_questions: bool
    can_answer_questions: bool
    can_change_prayer_times: bool
    can_create_events: bool
    can_create_notifications: bool
    is_default: bool
    assigned_by_id: Optional[int] = None
    assigned_at: datetime
    user: Optional[UserSummary] = None

    class Config:
        from_attributes = True


class EffectivePermissions(BaseModel):
    masjid_id: int
    roles: List[str]
    is_super_admin: bool
    permissions: Dict[str, bool]


class MemberRemovalResult(BaseModel):
    user_id: int
    removed: int
