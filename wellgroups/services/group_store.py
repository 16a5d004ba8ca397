# wellgroups/services/group_store.py
# -----------------------------------------------------------------------------
# ХРАНИЛИЩЕ ГРУПП: Group + GroupMember
# -----------------------------------------------------------------------------
# Инварианты:
#   • 0 < current_member_count <= max_members;
#   • ровно один sponsor на группу, owner_id == его user_id;
#   • одна строка group_members на (group_id, user_id).
# Функции не коммитят: границы транзакции держит сервис (run_atomic).

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ..models.group import DEFAULT_MAX_MEMBERS, Group, GroupStatus
from ..models.group_member import GroupMember, GroupRole
from ..models.read_marker import GroupReadMarker
from ..schemas.group import DESCRIPTION_MIN_LENGTH, NAME_MIN_LENGTH, GroupSettings
from ..utils.invite_code import generate_unique_invite_code, normalize_invite_code
from . import authz, message_store
from .errors import AlreadyMember, CannotRemoveSponsor, GroupFull, InvalidInput, NotAMember, NotFound, Unavailable

log = logging.getLogger(__name__)

MAX_CODE_COLLISIONS = 5


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =========================
# ЧТЕНИЕ
# =========================

def get_group(db: Session, group_id: int) -> Group:
    group = db.get(Group, group_id)
    if group is None:
        raise NotFound("Группа не найдена")
    return group


def _lock_group(db: Session, group_id: int) -> Group:
    """Строка группы под FOR UPDATE (PostgreSQL); в SQLite запись и так сериализуется."""
    group = db.scalar(select(Group).where(Group.id == group_id).with_for_update())
    if group is None:
        raise NotFound("Группа не найдена")
    return group


def _code_taken(db: Session, code: str) -> bool:
    return db.scalar(select(Group.id).where(Group.invite_code == code)) is not None


def find_by_invite_code(db: Session, code: str) -> Optional[Group]:
    normalized = normalize_invite_code(code)
    if not normalized:
        return None
    return db.scalar(select(Group).where(Group.invite_code == normalized))


def get_member(db: Session, group_id: int, user_id: int) -> Optional[GroupMember]:
    return db.scalar(
        select(GroupMember).where(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
    )


def get_role(db: Session, group_id: int, user_id: int) -> Optional[GroupRole]:
    return db.scalar(
        select(GroupMember.role).where(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
    )


def list_members(db: Session, group_id: int) -> List[GroupMember]:
    """Спонсор первым, дальше: по дате вступления."""
    stmt = (
        select(GroupMember)
        .options(joinedload(GroupMember.user))
        .where(GroupMember.group_id == group_id)
        .order_by((GroupMember.role != GroupRole.sponsor), GroupMember.joined_at.asc(), GroupMember.id.asc())
    )
    return list(db.scalars(stmt).all())


def list_user_groups(db: Session, user_id: int) -> List[Group]:
    stmt = (
        select(Group)
        .join(GroupMember, GroupMember.group_id == Group.id)
        .where(GroupMember.user_id == user_id)
        .order_by(Group.id.desc())
    )
    return list(db.scalars(stmt).all())


def count_sponsors(db: Session, group_id: int) -> int:
    return db.scalar(
        select(func.count())
        .select_from(GroupMember)
        .where(GroupMember.group_id == group_id, GroupMember.role == GroupRole.sponsor)
    ) or 0


def capacity(group: Group) -> Dict[str, Any]:
    spots = max(0, group.max_members - group.current_member_count)
    return {
        "group_id": group.id,
        "current_member_count": group.current_member_count,
        "max_members": group.max_members,
        "spots_remaining": spots,
        "percentage_full": round(group.current_member_count * 100.0 / group.max_members, 1),
        "is_full": spots == 0,
    }


# =========================
# СОЗДАНИЕ
# =========================

def create_group(
    db: Session,
    owner_id: int,
    *,
    name: str,
    description: str = "",
    settings: Optional[Dict[str, Any]] = None,
    max_members: int = DEFAULT_MAX_MEMBERS,
) -> Group:
    """
    Группа + строка спонсора в одной транзакции (count=1 сразу, пустой группы не бывает).

    Инвайт-код: генерируем, пока не найдём свободный; если между проверкой и вставкой
    код успели занять (UNIQUE): откатываем SAVEPOINT и пробуем заново.
    """
    merged_settings = _deep_merge(GroupSettings().model_dump(), settings or {})
    # прогоняем через схему, чтобы в JSON не попали левые ключи/типы
    merged_settings = GroupSettings.model_validate(merged_settings).model_dump()

    for attempt in range(1, MAX_CODE_COLLISIONS + 1):
        try:
            code = generate_unique_invite_code(lambda c: _code_taken(db, c))
        except RuntimeError as e:
            raise Unavailable("Не удалось подобрать свободный инвайт-код") from e

        now = _utc_now()
        group = Group(
            name=name.strip(),
            description=(description or "").strip(),
            invite_code=code,
            owner_id=owner_id,
            status=GroupStatus.active,
            max_members=max_members,
            current_member_count=1,
            settings=merged_settings,
            created_at=now,
            updated_at=now,
        )
        # коллизия откатывает только эту попытку
        nested = db.begin_nested()
        try:
            db.add(group)
            db.flush()
            db.add(
                GroupMember(
                    group_id=group.id,
                    user_id=owner_id,
                    role=GroupRole.sponsor,
                    joined_at=now,
                    last_active_at=now,
                )
            )
            db.flush()
            nested.commit()
            return group
        except IntegrityError:
            nested.rollback()
            if not _code_taken(db, code):
                raise
            log.warning(f"Invite code collision on insert ({code}), attempt {attempt}")

    raise Unavailable("Не удалось подобрать свободный инвайт-код")


# =========================
# СОСТАВ
# =========================

def add_member(db: Session, group_id: int, user_id: int) -> GroupMember:
    """
    Проверка вместимости и вставка: одна атомарная единица:
    UPDATE ... SET count = count + 1 WHERE count < max_members (compare-and-swap)
    и INSERT в той же транзакции. Два параллельных вступления на последнее место
    не могут пройти оба: второй UPDATE затронет 0 строк -> GroupFull.
    """
    group = _lock_group(db, group_id)

    if get_member(db, group_id, user_id) is not None:
        raise AlreadyMember()

    res = db.execute(
        update(Group)
        .where(Group.id == group_id, Group.current_member_count < Group.max_members)
        .values(current_member_count=Group.current_member_count + 1, updated_at=_utc_now())
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise GroupFull()

    now = _utc_now()
    member = GroupMember(
        group_id=group_id,
        user_id=user_id,
        role=GroupRole.member,
        joined_at=now,
        last_active_at=now,
    )
    db.add(member)
    try:
        db.flush()
    except IntegrityError as e:
        # гонка по UNIQUE (group_id, user_id): счётчик откатится вместе с транзакцией
        raise AlreadyMember() from e

    db.expire(group, ["current_member_count", "updated_at"])
    return member


def remove_member(db: Session, group_id: int, user_id: int) -> None:
    """DELETE строки и декремент счётчика: в одной транзакции. Спонсора удалить нельзя."""
    group = _lock_group(db, group_id)
    member = get_member(db, group_id, user_id)
    if member is None:
        raise NotAMember()
    if member.role == GroupRole.sponsor:
        raise CannotRemoveSponsor()

    db.execute(
        delete(GroupMember)
        .where(GroupMember.id == member.id)
        .execution_options(synchronize_session=False)
    )
    db.execute(
        delete(GroupReadMarker)
        .where(GroupReadMarker.group_id == group_id, GroupReadMarker.user_id == user_id)
        .execution_options(synchronize_session=False)
    )
    res = db.execute(
        update(Group)
        .where(Group.id == group_id, Group.current_member_count > 1)
        .values(current_member_count=Group.current_member_count - 1, updated_at=_utc_now())
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        # остался бы 0 участников: значит, удаляли последнего (спонсора), чего быть не должно
        raise InvalidInput("Нельзя оставить группу без участников")

    db.expunge(member)
    db.expire(group, ["current_member_count", "updated_at"])


def transfer_ownership(db: Session, group_id: int, from_user_id: int, to_user_id: int) -> Group:
    """Роли меняются одной транзакцией: ни нуля, ни двух спонсоров снаружи не видно."""
    group = _lock_group(db, group_id)
    current = get_member(db, group_id, from_user_id)
    target = get_member(db, group_id, to_user_id)
    authz.can_transfer_ownership(
        current.role if current else None,
        target.role if target else None,
    ).require()

    current.role = GroupRole.member
    target.role = GroupRole.sponsor
    group.owner_id = to_user_id
    group.updated_at = _utc_now()
    db.flush()
    return group


def touch_member(db: Session, group_id: int, user_id: int) -> None:
    db.execute(
        update(GroupMember)
        .where(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
        .values(last_active_at=_utc_now())
        .execution_options(synchronize_session=False)
    )


# =========================
# ЖИЗНЕННЫЙ ЦИКЛ / НАСТРОЙКИ
# =========================

def delete_group(db: Session, group_id: int, requester_id: int) -> None:
    """
    Жёсткое удаление одной транзакцией, явный каскад:
      реакции -> сообщения -> маркеры прочтения -> участники -> группа.
    Журнал событий (events) не трогаем.
    """
    group = _lock_group(db, group_id)
    authz.can_manage_group(get_role(db, group_id, requester_id)).require()

    message_store.purge_group(db, group_id)
    db.execute(
        delete(GroupReadMarker)
        .where(GroupReadMarker.group_id == group_id)
        .execution_options(synchronize_session=False)
    )
    db.execute(
        delete(GroupMember)
        .where(GroupMember.group_id == group_id)
        .execution_options(synchronize_session=False)
    )
    db.execute(
        delete(Group)
        .where(Group.id == group_id)
        .execution_options(synchronize_session=False)
    )
    db.expunge(group)


def update_settings(db: Session, group_id: int, requester_id: int, patch: Dict[str, Any]) -> Group:
    """Частичное обновление: непереданные поля (в т.ч. вложенные) не меняются."""
    group = _lock_group(db, group_id)
    authz.can_manage_group(get_role(db, group_id, requester_id)).require()

    current = GroupSettings.model_validate(group.settings or {}).model_dump()
    merged = GroupSettings.model_validate(_deep_merge(current, patch or {})).model_dump()
    # новый dict, чтобы ORM увидел изменение JSON-колонки
    group.settings = merged
    group.updated_at = _utc_now()
    db.flush()
    return group


def update_info(
    db: Session,
    group_id: int,
    requester_id: int,
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
) -> Group:
    group = _lock_group(db, group_id)
    authz.can_manage_group(get_role(db, group_id, requester_id)).require()

    if name is not None and len(name.strip()) < NAME_MIN_LENGTH:
        raise InvalidInput(f"Название группы: минимум {NAME_MIN_LENGTH} символа")
    if description is not None and description.strip() and len(description.strip()) < DESCRIPTION_MIN_LENGTH:
        raise InvalidInput(f"Описание группы: минимум {DESCRIPTION_MIN_LENGTH} символов")

    if name is not None:
        group.name = name.strip()
    if description is not None:
        group.description = description.strip()
    group.updated_at = _utc_now()
    db.flush()
    return group


def set_status(db: Session, group_id: int, requester_id: int, status: GroupStatus) -> Group:
    group = _lock_group(db, group_id)
    authz.can_manage_group(get_role(db, group_id, requester_id)).require()

    if group.status == status:
        return group
    group.status = status
    group.archived_at = _utc_now() if status == GroupStatus.archived else None
    group.updated_at = _utc_now()
    db.flush()
    return group


def _deep_merge(base: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _deep_merge(out[key], value)
        else:
            out[key] = value
    return out
