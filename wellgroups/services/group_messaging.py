# wellgroups/services/group_messaging.py
# -----------------------------------------------------------------------------
# СЕРВИС ГРУППОВОГО ЧАТА: отправка / лента / правка / удаление / реакции /
# отметки о прочтении.
# -----------------------------------------------------------------------------
# Роль запрашивающего берём только из group_membership.get_role, никогда из запроса.

from __future__ import annotations

import logging
import os
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..models.group_member import GroupMember
from ..models.group_message import GroupMessage, MessageType
from ..models.read_marker import GroupReadMarker
from ..schemas.message import MessageOut, MessagePageOut, ReactionOut, UnreadOut
from . import authz, group_membership, group_store, message_store
from .atomic import run_atomic
from .errors import InvalidContent, InvalidInput

log = logging.getLogger(__name__)

MESSAGE_MAX_LENGTH = int(os.getenv("MESSAGE_MAX_LENGTH", "500"))

DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 100


def _clean_content(content: Optional[str]) -> str:
    text = (content or "").strip()
    if not text:
        raise InvalidContent("Сообщение не может быть пустым")
    if len(text) > MESSAGE_MAX_LENGTH:
        raise InvalidContent(f"Сообщение длиннее {MESSAGE_MAX_LENGTH} символов", max_length=MESSAGE_MAX_LENGTH)
    return text


def post_system_notification(db: Session, group_id: int, content: str) -> GroupMessage:
    """
    Системное сообщение от "system". НЕ коммитит: вызывается внутри
    транзакции команды членства (join/leave/kick/transfer).
    """
    return message_store.append(db, group_id, None, content, MessageType.system_notification)


def seed_read_marker(db: Session, group_id: int, user_id: int) -> None:
    """Новичку история до вступления не в счёт непрочитанных. НЕ коммитит (часть join)."""
    db.add(
        GroupReadMarker(
            group_id=group_id,
            user_id=user_id,
            last_read_message_id=message_store.latest_message_id(db, group_id) or 0,
        )
    )


# =========================
# КОМАНДЫ
# =========================

def send_message(
    db: Session,
    group_id: int,
    sender_id: int,
    content: str,
    message_type: MessageType = MessageType.text,
    reply_to_id: Optional[int] = None,
) -> MessageOut:
    group = group_store.get_group(db, group_id)
    authz.can_post(group_membership.get_role(db, group_id, sender_id), group).require()
    text = _clean_content(content)

    def op():
        msg = message_store.append(db, group_id, sender_id, text, message_type, reply_to_id)
        group_store.touch_member(db, group_id, sender_id)
        return msg

    msg = run_atomic(db, op)
    log.debug(f"Message {msg.id} posted to group {group_id} by {sender_id}")
    return MessageOut.model_validate(msg)


def send_system_notification(db: Session, group_id: int, content: str) -> MessageOut:
    group_store.get_group(db, group_id)
    text = _clean_content(content)
    msg = run_atomic(db, lambda: post_system_notification(db, group_id, text))
    return MessageOut.model_validate(msg)


def edit_message(db: Session, message_id: int, requester_id: int, new_content: str) -> MessageOut:
    """Править можно только своё, только пока ты в группе и она не в архиве."""
    msg = message_store.get_message(db, message_id)
    group = group_store.get_group(db, msg.group_id)
    authz.can_post(group_membership.get_role(db, msg.group_id, requester_id), group).require()
    text = _clean_content(new_content)
    msg = run_atomic(db, lambda: message_store.edit(db, message_id, requester_id, text))
    return MessageOut.model_validate(msg)


def delete_message(db: Session, message_id: int, requester_id: int) -> None:
    msg = message_store.get_message(db, message_id)
    role = group_membership.get_role(db, msg.group_id, requester_id)
    group_id = run_atomic(db, lambda: message_store.delete_message(db, message_id, requester_id, role))
    log.info(f"Message {message_id} in group {group_id} deleted by {requester_id}")


def react(db: Session, message_id: int, user_id: int, emoji: str) -> ReactionOut:
    emoji = (emoji or "").strip()
    if not emoji:
        raise InvalidInput("Пустая реакция")
    msg = message_store.get_message(db, message_id)
    authz.can_react(group_membership.get_role(db, msg.group_id, user_id)).require()
    result = run_atomic(db, lambda: message_store.toggle_reaction(db, message_id, user_id, emoji))
    summary = message_store.reactions_for(db, [message_id])[message_id]
    return ReactionOut(message_id=message_id, emoji=emoji, result=result, reactions=summary)


def mark_read(db: Session, group_id: int, user_id: int) -> Optional[int]:
    """Сдвигает отметку прочтения на последнее сообщение группы. Возвращает его id."""
    group_store.get_group(db, group_id)
    authz.can_read_messages(group_membership.get_role(db, group_id, user_id)).require()

    def op():
        last_id = message_store.latest_message_id(db, group_id)
        marker = db.scalar(
            select(GroupReadMarker).where(
                GroupReadMarker.group_id == group_id,
                GroupReadMarker.user_id == user_id,
            )
        )
        if marker is None:
            marker = GroupReadMarker(group_id=group_id, user_id=user_id)
            db.add(marker)
        # отметка только вперёд
        if last_id is not None and (marker.last_read_message_id or 0) < last_id:
            marker.last_read_message_id = last_id
        marker.updated_at = datetime.now(timezone.utc)
        db.flush()
        return marker.last_read_message_id

    return run_atomic(db, op)


# =========================
# ЧТЕНИЕ
# =========================

def list_messages(
    db: Session,
    group_id: int,
    requester_id: int,
    *,
    limit: int = DEFAULT_PAGE_LIMIT,
    before_message_id: Optional[int] = None,
) -> MessagePageOut:
    group_store.get_group(db, group_id)
    authz.can_read_messages(group_membership.get_role(db, group_id, requester_id)).require()
    limit = max(1, min(MAX_PAGE_LIMIT, limit))
    result = message_store.page(db, group_id, limit, before_message_id)
    return MessagePageOut(
        messages=[MessageOut.model_validate(m) for m in result["messages"]],
        has_more=result["has_more"],
        oldest_message_id=result["oldest_message_id"],
    )


def unread_counts(db: Session, user_id: int) -> UnreadOut:
    """
    Непрочитанные по всем группам пользователя: сообщения после его отметки,
    кроме собственных. Системные считаются.
    """
    marker = (
        select(GroupReadMarker.last_read_message_id)
        .where(
            GroupReadMarker.group_id == GroupMessage.group_id,
            GroupReadMarker.user_id == user_id,
        )
        .scalar_subquery()
    )
    rows = db.execute(
        select(GroupMessage.group_id, func.count(GroupMessage.id))
        .join(
            GroupMember,
            (GroupMember.group_id == GroupMessage.group_id) & (GroupMember.user_id == user_id),
        )
        .where(
            GroupMessage.id > func.coalesce(marker, 0),
            (GroupMessage.sender_id.is_(None)) | (GroupMessage.sender_id != user_id),
        )
        .group_by(GroupMessage.group_id)
    ).all()

    by_group: Dict[int, int] = defaultdict(int)
    for group_id, count in rows:
        by_group[int(group_id)] = int(count)
    return UnreadOut(total=sum(by_group.values()), by_group=dict(by_group))
