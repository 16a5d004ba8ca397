# wellgroups/services/authz.py
# -----------------------------------------------------------------------------
# Авторизация: одна функция на операцию, вызывается один раз в начале метода сервиса.
# Возвращает Decision (Allowed / Forbidden с конкретной ошибкой), а не разбросанные
# по коду сравнения role == "sponsor".
# -----------------------------------------------------------------------------

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..models.group import Group, GroupStatus
from ..models.group_member import GroupRole
from ..models.group_message import GroupMessage, MessageType
from .errors import (
    CannotLeaveAsSponsor,
    CannotRemoveSponsor,
    Forbidden,
    GroupArchived,
    GroupError,
    InvalidTarget,
    NotAMember,
    NotAuthor,
    NotEligible,
    WrongType,
)


@dataclass(frozen=True)
class Decision:
    allowed: bool
    error: Optional[GroupError] = None

    def require(self) -> None:
        if not self.allowed:
            raise self.error


Allowed = Decision(True)


def Denied(error: GroupError) -> Decision:
    return Decision(False, error)


def _is_sponsor(role: Optional[GroupRole]) -> bool:
    return role == GroupRole.sponsor


# --- группы ---

def can_create_group(eligibility) -> Decision:
    if not eligibility.can_create_group:
        return Denied(NotEligible())
    return Allowed


def can_join(group: Group) -> Decision:
    # допуск (eligibility) для вступления не нужен: только валидный код
    if group.status != GroupStatus.active:
        return Denied(GroupArchived())
    return Allowed


def can_view_group(role: Optional[GroupRole]) -> Decision:
    if role is None:
        return Denied(Forbidden("Группа видна только участникам"))
    return Allowed


def can_leave(role: Optional[GroupRole]) -> Decision:
    if role is None:
        return Denied(NotAMember("Вы не являетесь участником группы"))
    if _is_sponsor(role):
        return Denied(CannotLeaveAsSponsor())
    return Allowed


def can_manage_group(role: Optional[GroupRole]) -> Decision:
    """Настройки, инфо, архив, удаление: только спонсор."""
    if not _is_sponsor(role):
        return Denied(Forbidden("Только спонсор может выполнить это действие"))
    return Allowed


def can_remove_member(requester_role: Optional[GroupRole], target_role: Optional[GroupRole]) -> Decision:
    if not _is_sponsor(requester_role):
        return Denied(Forbidden("Удалять участников может только спонсор"))
    if target_role is None:
        return Denied(NotAMember())
    if _is_sponsor(target_role):
        return Denied(CannotRemoveSponsor())
    return Allowed


def can_transfer_ownership(requester_role: Optional[GroupRole], target_role: Optional[GroupRole]) -> Decision:
    if not _is_sponsor(requester_role):
        return Denied(Forbidden("Передать спонсорство может только текущий спонсор"))
    if target_role is None:
        return Denied(NotAMember("Новый спонсор должен быть участником группы"))
    if _is_sponsor(target_role):
        return Denied(InvalidTarget())
    return Allowed


# --- сообщения ---

def can_post(role: Optional[GroupRole], group: Group) -> Decision:
    if role is None:
        return Denied(Forbidden("Писать в чат могут только участники группы"))
    if group.status != GroupStatus.active:
        return Denied(GroupArchived())
    return Allowed


def can_read_messages(role: Optional[GroupRole]) -> Decision:
    if role is None:
        return Denied(Forbidden("Читать чат могут только участники группы"))
    return Allowed


def can_edit_message(message: GroupMessage, user_id: int) -> Decision:
    if message.sender_id is None or message.sender_id != user_id:
        return Denied(NotAuthor())
    if message.message_type != MessageType.text:
        return Denied(WrongType())
    return Allowed


def can_delete_message(message: GroupMessage, user_id: int, role: Optional[GroupRole]) -> Decision:
    if message.sender_id is not None and message.sender_id == user_id:
        return Allowed
    if _is_sponsor(role):
        return Allowed
    return Denied(Forbidden("Удалить можно только своё сообщение"))


def can_react(role: Optional[GroupRole]) -> Decision:
    if role is None:
        return Denied(Forbidden("Реакции доступны только участникам группы"))
    return Allowed
