# wellgroups/services/events.py
from __future__ import annotations
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from wellgroups.models.event import Event

# Типы событий журнала группы
GROUP_CREATED = "group_created"
GROUP_RENAMED = "group_renamed"
GROUP_SETTINGS_UPDATED = "group_settings_updated"
GROUP_ARCHIVED = "group_archived"
GROUP_UNARCHIVED = "group_unarchived"
GROUP_DELETED = "group_deleted"

MEMBER_JOINED = "member_joined"
MEMBER_REMOVED = "member_removed"
MEMBER_LEFT = "member_left"
OWNERSHIP_TRANSFERRED = "ownership_transferred"


def log_event(
    db: Session,
    *,
    type: str,
    actor_id: int,
    group_id: Optional[int] = None,
    target_user_id: Optional[int] = None,
    data: Optional[Dict[str, Any]] = None,
) -> Event:
    """
    Единая точка записи событий. Вызывается в той же транзакции, что и бизнес-операция.
    Не делает commit.
    """
    ev = Event(
        type=type,
        actor_id=actor_id,
        group_id=group_id,
        target_user_id=target_user_id,
        data=(data or {}),
    )
    db.add(ev)
    return ev


def list_group_events(db: Session, group_id: int, *, limit: int = 20, offset: int = 0) -> List[Event]:
    stmt = (
        select(Event)
        .where(Event.group_id == group_id)
        .order_by(Event.created_at.desc(), Event.id.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(db.scalars(stmt).all())
