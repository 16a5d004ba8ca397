# wellgroups/schemas/group.py
# -----------------------------------------------------------------------------
# СХЕМЫ Pydantic: Group + настройки группы
# -----------------------------------------------------------------------------

from __future__ import annotations

from typing import Optional, Dict, Any
from datetime import datetime

from pydantic import BaseModel, Field, computed_field, field_validator

from ..models.group import GroupStatus
from ..utils.invite_code import format_invite_code

NAME_MIN_LENGTH = 3
DESCRIPTION_MIN_LENGTH = 10


class ActivityGoals(BaseModel):
    daily_steps_goal: int = Field(8000, ge=0, description="Цель по шагам в день")
    weekly_food_entries_goal: int = Field(14, ge=0, description="Записей питания в неделю")
    monthly_training_modules_goal: int = Field(2, ge=0, description="Учебных модулей в месяц")


class NotificationSettings(BaseModel):
    new_member_joins: bool = True
    member_achievements: bool = True
    group_challenges: bool = True
    inactive_members: bool = True


class GroupSettings(BaseModel):
    is_public: bool = Field(False, description="Группа видна в поиске")
    require_approval: bool = Field(False, description="Вступление с одобрения спонсора")
    allow_member_invites: bool = Field(True, description="Участники могут делиться кодом")
    activity_goals: ActivityGoals = Field(default_factory=ActivityGoals)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)


# --- PATCH: все поля необязательны, мерджим только переданные ---

class ActivityGoalsPatch(BaseModel):
    daily_steps_goal: Optional[int] = Field(None, ge=0)
    weekly_food_entries_goal: Optional[int] = Field(None, ge=0)
    monthly_training_modules_goal: Optional[int] = Field(None, ge=0)


class NotificationSettingsPatch(BaseModel):
    new_member_joins: Optional[bool] = None
    member_achievements: Optional[bool] = None
    group_challenges: Optional[bool] = None
    inactive_members: Optional[bool] = None


class GroupSettingsPatch(BaseModel):
    is_public: Optional[bool] = None
    require_approval: Optional[bool] = None
    allow_member_invites: Optional[bool] = None
    activity_goals: Optional[ActivityGoalsPatch] = None
    notifications: Optional[NotificationSettingsPatch] = None

    def changes(self) -> Dict[str, Any]:
        """Только явно переданные поля (вложенные: тоже), без None."""
        return self.model_dump(exclude_unset=True, exclude_none=True)


class GroupCreate(BaseModel):
    name: str = Field(..., min_length=NAME_MIN_LENGTH, max_length=100, description="Название группы")
    description: str = Field("", max_length=1000, description="Описание группы")
    settings: Optional[GroupSettingsPatch] = Field(None, description="Переопределение настроек по умолчанию")

    @field_validator("description")
    @classmethod
    def _check_description(cls, v: str) -> str:
        # пустое описание можно, короткое нельзя (как и в update_info)
        v = (v or "").strip()
        if v and len(v) < DESCRIPTION_MIN_LENGTH:
            raise ValueError(f"Описание группы: минимум {DESCRIPTION_MIN_LENGTH} символов")
        return v


class GroupInfoUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)


class JoinGroupIn(BaseModel):
    invite_code: str = Field(..., description="Код приглашения, с дефисом или без")
    message: Optional[str] = Field(None, max_length=500, description="Личное сообщение при вступлении")


class LeaveGroupIn(BaseModel):
    reason: Optional[str] = Field(None, max_length=200)


class TransferOwnershipIn(BaseModel):
    to_user_id: int = Field(..., description="Кому передать спонсорство")


class GroupOut(BaseModel):
    id: int = Field(..., description="ID группы")
    name: str = Field(..., description="Название группы")
    description: Optional[str] = Field(None, description="Описание группы")
    invite_code: str = Field(..., description="Код без дефиса (хранимая форма)")
    owner_id: int = Field(..., description="ID текущего спонсора")
    status: GroupStatus = Field(GroupStatus.active, description="Статус: active|archived")
    max_members: int
    current_member_count: int
    settings: GroupSettings = Field(default_factory=GroupSettings)
    created_at: datetime
    updated_at: Optional[datetime] = None
    archived_at: Optional[datetime] = Field(None, description="Момент архивирования (UTC)")

    @computed_field
    @property
    def invite_code_display(self) -> str:
        return format_invite_code(self.invite_code)

    class Config:
        from_attributes = True


class GroupCapacityOut(BaseModel):
    group_id: int
    current_member_count: int
    max_members: int
    spots_remaining: int
    percentage_full: float
    is_full: bool
