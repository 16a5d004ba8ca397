# wellgroups/schemas/group_member.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.group_member import GroupRole


class GroupMemberOut(BaseModel):
    id: int
    group_id: int
    user_id: int
    role: GroupRole
    joined_at: datetime
    last_active_at: datetime
    name: Optional[str] = None

    class Config:
        from_attributes = True


class MemberActivityOut(BaseModel):
    user_id: int
    name: Optional[str] = None
    role: GroupRole
    joined_at: datetime
    last_active_at: datetime
    activity_score: int = Field(..., ge=0, le=100, description="100 минус 10 за каждый день без активности")
    is_active: bool = Field(..., description="Активность не старше ACTIVE_WITHIN_DAYS дней")


class GroupAnalyticsOut(BaseModel):
    group_id: int
    member_count: int
    active_members: int
    recent_joins: int = Field(..., description="Вступили за последние RECENT_JOIN_DAYS дней")
    average_activity_score: int
    group_age_days: int
    members: List[MemberActivityOut] = Field(default_factory=list)
