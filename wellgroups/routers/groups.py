# wellgroups/routers/groups.py
# РОУТЕР ГРУПП И УЧАСТНИКОВ
# -----------------------------------------------------------------------------
# Тонкий слой: текущий пользователь из Telegram -> сервис членства.
# Доменные ошибки (GroupError) превращает в ответ обработчик из main.py:
#   {"detail": {"code": "...", "message": "..."}}

from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from wellgroups.db import get_db
from wellgroups.models.user import User
from wellgroups.schemas.group import (
    GroupCapacityOut,
    GroupCreate,
    GroupInfoUpdate,
    GroupOut,
    GroupSettingsPatch,
    JoinGroupIn,
    LeaveGroupIn,
    TransferOwnershipIn,
)
from wellgroups.schemas.group_member import GroupAnalyticsOut, GroupMemberOut
from wellgroups.services import group_membership
from wellgroups.services.activity_signals import ActivitySignalSource, get_signal_source
from wellgroups.utils.identity import get_current_user

router = APIRouter()


@router.post("/", response_model=GroupOut, status_code=status.HTTP_201_CREATED)
def create_group(
    body: GroupCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    signals: ActivitySignalSource = Depends(get_signal_source),
):
    """
    Создать группу. Нужен допуск (7 активных дней + 8 модулей), иначе 403 not_eligible.
    Создатель становится спонсором, код приглашения генерируется автоматически.
    """
    return group_membership.create_group(db, current_user.id, body, signals)


@router.post("/join", response_model=GroupOut)
def join_group(
    body: JoinGroupIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Вступить по коду (XXX-XXX или XXXXXX). Допуск не требуется."""
    return group_membership.join_group(db, current_user.id, body.invite_code, body.message)


@router.get("/mine", response_model=List[GroupOut])
def my_groups(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return group_membership.user_groups(db, current_user.id)


@router.get("/{group_id}", response_model=GroupOut)
def get_group(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return group_membership.get_group(db, group_id, current_user.id)


@router.get("/{group_id}/capacity", response_model=GroupCapacityOut)
def get_capacity(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return group_membership.get_capacity(db, group_id, current_user.id)


@router.get("/{group_id}/members", response_model=List[GroupMemberOut])
def get_members(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Состав группы: спонсор первым, дальше по дате вступления."""
    return group_membership.get_members(db, group_id, current_user.id)


@router.get("/{group_id}/analytics", response_model=GroupAnalyticsOut)
def get_analytics(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Активность участников за последние дни. Только спонсор."""
    return group_membership.group_analytics(db, group_id, current_user.id)


@router.post("/{group_id}/leave", status_code=status.HTTP_204_NO_CONTENT)
def leave_group(
    group_id: int,
    body: Optional[LeaveGroupIn] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Выйти из группы. Спонсор выйти не может (409 cannot_leave_as_sponsor)."""
    group_membership.leave_group(db, current_user.id, group_id, body.reason if body else None)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{group_id}/transfer-ownership", status_code=status.HTTP_204_NO_CONTENT)
def transfer_ownership(
    group_id: int,
    body: TransferOwnershipIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group_membership.transfer_ownership(db, group_id, current_user.id, body.to_user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{group_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_member(
    group_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Кик участника. Только спонсор; спонсора удалить нельзя."""
    group_membership.remove_member(db, current_user.id, group_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/{group_id}/settings", response_model=GroupOut)
def update_settings(
    group_id: int,
    body: GroupSettingsPatch,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Частичное обновление настроек: вложенные объекты мерджатся, не заменяются."""
    return group_membership.update_settings(db, group_id, current_user.id, body)


@router.patch("/{group_id}", response_model=GroupOut)
def update_info(
    group_id: int,
    body: GroupInfoUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return group_membership.update_info(db, group_id, current_user.id, body)


@router.post("/{group_id}/archive", response_model=GroupOut)
def archive_group(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return group_membership.archive_group(db, group_id, current_user.id)


@router.post("/{group_id}/unarchive", response_model=GroupOut)
def unarchive_group(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return group_membership.unarchive_group(db, group_id, current_user.id)


@router.delete("/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_group(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Жёсткое удаление со всеми участниками, сообщениями и реакциями. Только спонсор."""
    group_membership.delete_group(db, group_id, current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
