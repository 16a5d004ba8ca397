# wellgroups/services/group_membership.py
# -----------------------------------------------------------------------------
# СЕРВИС ЧЛЕНСТВА: создание / вступление / выход / кик / передача спонсорства /
# настройки / архив / удаление.
# -----------------------------------------------------------------------------
# Каждая команда:
#   1) один вызов функции из authz: до любых изменений;
#   2) изменения через group_store в одной транзакции (run_atomic);
#   3) возвращает снимок (Pydantic), а не живой ORM-объект.

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models.group import DEFAULT_MAX_MEMBERS, GroupStatus
from ..models.group_member import GroupRole
from ..models.user import User
from ..schemas.event import EventOut
from ..schemas.group import (
    GroupCapacityOut,
    GroupCreate,
    GroupInfoUpdate,
    GroupOut,
    GroupSettingsPatch,
)
from ..schemas.group_member import GroupAnalyticsOut, GroupMemberOut, MemberActivityOut
from ..utils.user import display_name_of
from . import authz, eligibility, events, group_messaging, group_store
from .activity_signals import ActivitySignalSource
from .atomic import run_atomic
from .errors import AlreadyMember, GroupFull, NotFound

log = logging.getLogger(__name__)

GROUP_MAX_MEMBERS = int(os.getenv("GROUP_MAX_MEMBERS", str(DEFAULT_MAX_MEMBERS)))

# окна для сводки активности (group_analytics)
ACTIVE_WITHIN_DAYS = 3
RECENT_JOIN_DAYS = 7


def _name(db: Session, user_id: int) -> str:
    return display_name_of(db.get(User, user_id))


def get_role(db: Session, group_id: int, user_id: int) -> Optional[GroupRole]:
    """Единственный источник роли для остальных сервисов (роль от клиента не принимаем)."""
    return group_store.get_role(db, group_id, user_id)


# =========================
# КОМАНДЫ
# =========================

def create_group(db: Session, user_id: int, spec: GroupCreate, signals: ActivitySignalSource) -> GroupOut:
    check = eligibility.evaluate(user_id, signals)
    decision = authz.can_create_group(check)
    if not decision.allowed:
        log.warning(
            f"User {user_id} not eligible to create a group "
            f"(days_active={check.requirements.seven_day_activity.days_active}, "
            f"modules={check.requirements.training_completion.modules_completed})"
        )
    decision.require()

    def op():
        group = group_store.create_group(
            db,
            user_id,
            name=spec.name,
            description=spec.description,
            settings=spec.settings.changes() if spec.settings else None,
            max_members=GROUP_MAX_MEMBERS,
        )
        events.log_event(
            db,
            type=events.GROUP_CREATED,
            actor_id=user_id,
            group_id=group.id,
            data={"name": group.name, "invite_code": group.invite_code},
        )
        return group

    group = run_atomic(db, op)
    log.info(f"Group {group.id} created by user {user_id} (code {group.invite_code})")
    return GroupOut.model_validate(group)


def join_group(db: Session, user_id: int, invite_code: str, message: Optional[str] = None) -> GroupOut:
    """
    Вступление по коду. Допуск (eligibility) НЕ требуется: только валидный код.
    Порядок ошибок: NotFound -> GroupArchived -> GroupFull -> AlreadyMember.
    Окончательную проверку вместимости делает group_store.add_member атомарно.
    """
    group = group_store.find_by_invite_code(db, invite_code)
    if group is None:
        raise NotFound("Группа с таким кодом не найдена")
    authz.can_join(group).require()
    if group.current_member_count >= group.max_members:
        raise GroupFull()
    if group_store.get_member(db, group.id, user_id) is not None:
        raise AlreadyMember()

    group_id = group.id
    group_name = group.name

    def op():
        group_store.add_member(db, group_id, user_id)
        # до приветствия: само приветствие новичок увидит непрочитанным
        group_messaging.seed_read_marker(db, group_id, user_id)
        who = _name(db, user_id)
        group_messaging.post_system_notification(
            db, group_id, f"🎉 {who} joined the group! Welcome to {group_name}!"
        )
        events.log_event(
            db,
            type=events.MEMBER_JOINED,
            actor_id=user_id,
            group_id=group_id,
            target_user_id=user_id,
            data={"via": "invite_code", "message": message} if message else {"via": "invite_code"},
        )
        return group_store.get_group(db, group_id)

    joined = run_atomic(db, op)
    log.info(f"User {user_id} joined group {group_id}")
    return GroupOut.model_validate(joined)


def leave_group(db: Session, user_id: int, group_id: int, reason: Optional[str] = None) -> None:
    group_store.get_group(db, group_id)
    authz.can_leave(get_role(db, group_id, user_id)).require()

    def op():
        who = _name(db, user_id)
        group_store.remove_member(db, group_id, user_id)
        suffix = f" ({reason})" if reason else ""
        group_messaging.post_system_notification(db, group_id, f"👋 {who} has left the group{suffix}")
        events.log_event(
            db,
            type=events.MEMBER_LEFT,
            actor_id=user_id,
            group_id=group_id,
            target_user_id=user_id,
            data={"reason": reason} if reason else {},
        )

    run_atomic(db, op)
    log.info(f"User {user_id} left group {group_id}")


def remove_member(db: Session, requester_id: int, group_id: int, target_user_id: int) -> None:
    """Кик участника спонсором."""
    group_store.get_group(db, group_id)
    authz.can_remove_member(
        get_role(db, group_id, requester_id),
        get_role(db, group_id, target_user_id),
    ).require()

    def op():
        who = _name(db, target_user_id)
        group_store.remove_member(db, group_id, target_user_id)
        group_messaging.post_system_notification(db, group_id, f"{who} was removed from the group")
        events.log_event(
            db,
            type=events.MEMBER_REMOVED,
            actor_id=requester_id,
            group_id=group_id,
            target_user_id=target_user_id,
        )

    run_atomic(db, op)
    log.info(f"User {target_user_id} removed from group {group_id} by sponsor {requester_id}")


def transfer_ownership(db: Session, group_id: int, from_user_id: int, to_user_id: int) -> GroupOut:
    group_store.get_group(db, group_id)
    authz.can_transfer_ownership(
        get_role(db, group_id, from_user_id),
        get_role(db, group_id, to_user_id),
    ).require()

    def op():
        group = group_store.transfer_ownership(db, group_id, from_user_id, to_user_id)
        group_messaging.post_system_notification(
            db, group_id, f"⭐ {_name(db, to_user_id)} is now the group sponsor"
        )
        events.log_event(
            db,
            type=events.OWNERSHIP_TRANSFERRED,
            actor_id=from_user_id,
            group_id=group_id,
            target_user_id=to_user_id,
        )
        return group

    group = run_atomic(db, op)
    log.info(f"Group {group_id} ownership transferred {from_user_id} -> {to_user_id}")
    return GroupOut.model_validate(group)


def delete_group(db: Session, group_id: int, requester_id: int) -> None:
    group = group_store.get_group(db, group_id)
    authz.can_manage_group(get_role(db, group_id, requester_id)).require()
    name = group.name

    def op():
        group_store.delete_group(db, group_id, requester_id)
        events.log_event(
            db,
            type=events.GROUP_DELETED,
            actor_id=requester_id,
            group_id=group_id,
            data={"name": name},
        )

    run_atomic(db, op)
    log.info(f"Group {group_id} deleted by sponsor {requester_id}")


def update_settings(db: Session, group_id: int, requester_id: int, patch: GroupSettingsPatch) -> GroupOut:
    group_store.get_group(db, group_id)
    authz.can_manage_group(get_role(db, group_id, requester_id)).require()
    changes = patch.changes()

    def op():
        group = group_store.update_settings(db, group_id, requester_id, changes)
        events.log_event(
            db,
            type=events.GROUP_SETTINGS_UPDATED,
            actor_id=requester_id,
            group_id=group_id,
            data={"changes": changes},
        )
        return group

    return GroupOut.model_validate(run_atomic(db, op))


def update_info(db: Session, group_id: int, requester_id: int, body: GroupInfoUpdate) -> GroupOut:
    group_store.get_group(db, group_id)
    authz.can_manage_group(get_role(db, group_id, requester_id)).require()

    def op():
        before = group_store.get_group(db, group_id).name
        group = group_store.update_info(
            db, group_id, requester_id, name=body.name, description=body.description
        )
        if body.name is not None and group.name != before:
            events.log_event(
                db,
                type=events.GROUP_RENAMED,
                actor_id=requester_id,
                group_id=group_id,
                data={"old": before, "new": group.name},
            )
        return group

    return GroupOut.model_validate(run_atomic(db, op))


def _set_status(db: Session, group_id: int, requester_id: int, status: GroupStatus, event_type: str) -> GroupOut:
    group_store.get_group(db, group_id)
    authz.can_manage_group(get_role(db, group_id, requester_id)).require()

    def op():
        group = group_store.set_status(db, group_id, requester_id, status)
        events.log_event(db, type=event_type, actor_id=requester_id, group_id=group_id)
        return group

    return GroupOut.model_validate(run_atomic(db, op))


def archive_group(db: Session, group_id: int, requester_id: int) -> GroupOut:
    return _set_status(db, group_id, requester_id, GroupStatus.archived, events.GROUP_ARCHIVED)


def unarchive_group(db: Session, group_id: int, requester_id: int) -> GroupOut:
    return _set_status(db, group_id, requester_id, GroupStatus.active, events.GROUP_UNARCHIVED)


# =========================
# ЧТЕНИЕ
# =========================

def get_group(db: Session, group_id: int, requester_id: int) -> GroupOut:
    group = group_store.get_group(db, group_id)
    authz.can_view_group(get_role(db, group_id, requester_id)).require()
    return GroupOut.model_validate(group)


def get_members(db: Session, group_id: int, requester_id: int) -> List[GroupMemberOut]:
    group_store.get_group(db, group_id)
    authz.can_view_group(get_role(db, group_id, requester_id)).require()
    return [GroupMemberOut.model_validate(m) for m in group_store.list_members(db, group_id)]


def get_capacity(db: Session, group_id: int, requester_id: int) -> GroupCapacityOut:
    group = group_store.get_group(db, group_id)
    authz.can_view_group(get_role(db, group_id, requester_id)).require()
    return GroupCapacityOut(**group_store.capacity(group))


def user_groups(db: Session, user_id: int) -> List[GroupOut]:
    return [GroupOut.model_validate(g) for g in group_store.list_user_groups(db, user_id)]


def group_events(db: Session, group_id: int, requester_id: int, *, limit: int = 20, offset: int = 0) -> List[EventOut]:
    group_store.get_group(db, group_id)
    authz.can_view_group(get_role(db, group_id, requester_id)).require()
    return [EventOut.model_validate(e) for e in events.list_group_events(db, group_id, limit=limit, offset=offset)]


def _days_since(moment: datetime, now: datetime) -> int:
    # SQLite отдаёт naive datetime; храним всегда UTC
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return max(0, (now - moment).days)


def group_analytics(db: Session, group_id: int, requester_id: int) -> GroupAnalyticsOut:
    """
    Сводка активности для спонсора.
    activity_score = max(0, 100 - 10 * дней без активности); активен, если
    last_active_at не старше ACTIVE_WITHIN_DAYS дней; recent_joins: вступившие
    за последние RECENT_JOIN_DAYS дней.
    """
    group = group_store.get_group(db, group_id)
    authz.can_manage_group(get_role(db, group_id, requester_id)).require()

    now = datetime.now(timezone.utc)
    members = group_store.list_members(db, group_id)
    summary = []
    for m in members:
        idle = _days_since(m.last_active_at, now)
        summary.append(
            MemberActivityOut(
                user_id=m.user_id,
                name=m.name,
                role=m.role,
                joined_at=m.joined_at,
                last_active_at=m.last_active_at,
                activity_score=max(0, 100 - 10 * idle),
                is_active=idle <= ACTIVE_WITHIN_DAYS,
            )
        )

    average = round(sum(s.activity_score for s in summary) / len(summary)) if summary else 0
    return GroupAnalyticsOut(
        group_id=group_id,
        member_count=len(members),
        active_members=sum(1 for s in summary if s.is_active),
        recent_joins=sum(1 for m in members if _days_since(m.joined_at, now) <= RECENT_JOIN_DAYS),
        average_activity_score=average,
        group_age_days=_days_since(group.created_at, now),
        members=summary,
    )
