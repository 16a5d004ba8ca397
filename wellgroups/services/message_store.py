# wellgroups/services/message_store.py
# -----------------------------------------------------------------------------
# ХРАНИЛИЩЕ СООБЩЕНИЙ: GroupMessage + MessageReaction (в рамках группы)
# -----------------------------------------------------------------------------
# Порядок ленты: (created_at, id); id монотонно растёт, поэтому равные created_at
# разрешаются детерминированно. Пагинация: по курсору (keyset), не по offset:
# новые сообщения «сверху» не сдвигают уже полученные страницы.

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from ..models.group_member import GroupRole
from ..models.group_message import GroupMessage, MessageType
from ..models.message_reaction import MessageReaction
from . import authz
from .errors import InvalidReply, NotFound

log = logging.getLogger(__name__)

ReactionResult = Literal["added", "removed"]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def get_message(db: Session, message_id: int) -> GroupMessage:
    msg = db.get(GroupMessage, message_id)
    if msg is None:
        raise NotFound("Сообщение не найдено")
    return msg


def append(
    db: Session,
    group_id: int,
    sender_id: Optional[int],
    content: str,
    message_type: MessageType = MessageType.text,
    reply_to_id: Optional[int] = None,
) -> GroupMessage:
    """sender_id=None: системное сообщение ("system")."""
    if reply_to_id is not None:
        target_group = db.scalar(select(GroupMessage.group_id).where(GroupMessage.id == reply_to_id))
        if target_group is None or target_group != group_id:
            raise InvalidReply()

    msg = GroupMessage(
        group_id=group_id,
        sender_id=sender_id,
        content=content,
        message_type=message_type,
        reply_to_id=reply_to_id,
        created_at=_utc_now(),
    )
    db.add(msg)
    db.flush()
    return msg


def page(
    db: Session,
    group_id: int,
    limit: int,
    before_message_id: Optional[int] = None,
) -> Dict[str, Any]:
    """
    До limit сообщений строго старше курсора (или самые новые, если курсора нет),
    в порядке возрастания времени.
      • has_more: есть ли хоть одно сообщение старше первого в пачке;
      • oldest_message_id: id самого старого в пачке, курсор для следующей страницы.
    """
    stmt = (
        select(GroupMessage)
        .options(selectinload(GroupMessage.reactions))
        .where(GroupMessage.group_id == group_id)
    )

    if before_message_id is not None:
        cursor = db.execute(
            select(GroupMessage.created_at, GroupMessage.id).where(
                GroupMessage.id == before_message_id,
                GroupMessage.group_id == group_id,
            )
        ).first()
        if cursor is None:
            raise NotFound("Курсор пагинации не найден")
        c_created, c_id = cursor
        stmt = stmt.where(
            or_(
                GroupMessage.created_at < c_created,
                and_(GroupMessage.created_at == c_created, GroupMessage.id < c_id),
            )
        )

    # берём на одно больше, чтобы узнать has_more без отдельного COUNT
    rows = list(
        db.scalars(
            stmt.order_by(GroupMessage.created_at.desc(), GroupMessage.id.desc()).limit(limit + 1)
        ).all()
    )
    has_more = len(rows) > limit
    batch = rows[:limit]
    batch.reverse()

    return {
        "messages": batch,
        "has_more": has_more,
        "oldest_message_id": batch[0].id if batch else None,
    }


def edit(db: Session, message_id: int, requester_id: int, new_content: str) -> GroupMessage:
    msg = get_message(db, message_id)
    authz.can_edit_message(msg, requester_id).require()

    msg.content = new_content
    msg.edited_at = _utc_now()
    db.flush()
    return msg


def delete_message(db: Session, message_id: int, requester_id: int, requester_role: Optional[GroupRole]) -> int:
    """
    Жёсткое удаление сообщения и его реакций. Ответы на него остаются,
    но теряют ссылку (reply_to_id = NULL). Возвращает group_id.
    """
    msg = get_message(db, message_id)
    authz.can_delete_message(msg, requester_id, requester_role).require()

    group_id = msg.group_id
    db.execute(
        delete(MessageReaction)
        .where(MessageReaction.message_id == message_id)
        .execution_options(synchronize_session=False)
    )
    db.execute(
        update(GroupMessage)
        .where(GroupMessage.reply_to_id == message_id)
        .values(reply_to_id=None)
        .execution_options(synchronize_session=False)
    )
    db.execute(
        delete(GroupMessage)
        .where(GroupMessage.id == message_id)
        .execution_options(synchronize_session=False)
    )
    db.expunge(msg)
    return group_id


def toggle_reaction(db: Session, message_id: int, user_id: int, emoji: str) -> ReactionResult:
    """
    Есть такая (message, user, emoji): удаляем ("removed"), нет: вставляем ("added").

    Сначала DELETE: если строка была, он же и есть атомарное «снятие».
    Если INSERT упал на UNIQUE: значит, параллельный такой же вызов успел добавить,
    и наш вызов становится снятием: итог двух одинаковых команд всегда add, remove.
    """
    get_message(db, message_id)

    removed = db.execute(
        delete(MessageReaction)
        .where(
            MessageReaction.message_id == message_id,
            MessageReaction.user_id == user_id,
            MessageReaction.emoji == emoji,
        )
        .execution_options(synchronize_session=False)
    ).rowcount
    if removed:
        return "removed"

    nested = db.begin_nested()
    try:
        db.add(MessageReaction(message_id=message_id, user_id=user_id, emoji=emoji, created_at=_utc_now()))
        db.flush()
        nested.commit()
        return "added"
    except IntegrityError:
        nested.rollback()
        log.info(f"Concurrent reaction on message {message_id} by {user_id} ({emoji}), toggling off")
        db.execute(
            delete(MessageReaction)
            .where(
                MessageReaction.message_id == message_id,
                MessageReaction.user_id == user_id,
                MessageReaction.emoji == emoji,
            )
            .execution_options(synchronize_session=False)
        )
        return "removed"


def reactions_for(db: Session, message_ids: List[int]) -> Dict[int, Dict[str, List[int]]]:
    """{message_id: {emoji: [user_id, ...]}}; порядок пользователей: по времени реакции."""
    out: Dict[int, Dict[str, List[int]]] = {mid: {} for mid in message_ids}
    if not message_ids:
        return out
    rows = db.execute(
        select(MessageReaction.message_id, MessageReaction.emoji, MessageReaction.user_id)
        .where(MessageReaction.message_id.in_(message_ids))
        .order_by(MessageReaction.created_at.asc(), MessageReaction.id.asc())
    ).all()
    for message_id, emoji, user_id in rows:
        out[message_id].setdefault(emoji, []).append(user_id)
    return out


def latest_message_id(db: Session, group_id: int) -> Optional[int]:
    return db.scalar(select(func.max(GroupMessage.id)).where(GroupMessage.group_id == group_id))


def purge_group(db: Session, group_id: int) -> int:
    """Каскад при удалении группы: реакции, затем сообщения. Возвращает число сообщений."""
    message_ids = select(GroupMessage.id).where(GroupMessage.group_id == group_id)
    db.execute(
        delete(MessageReaction)
        .where(MessageReaction.message_id.in_(message_ids))
        .execution_options(synchronize_session=False)
    )
    # сначала обнулим ответы, чтобы не упереться в FK на самих себя
    db.execute(
        update(GroupMessage)
        .where(GroupMessage.group_id == group_id, GroupMessage.reply_to_id.is_not(None))
        .values(reply_to_id=None)
        .execution_options(synchronize_session=False)
    )
    return db.execute(
        delete(GroupMessage)
        .where(GroupMessage.group_id == group_id)
        .execution_options(synchronize_session=False)
    ).rowcount
