# wellgroups/routers/messages.py
# РОУТЕР ГРУППОВОГО ЧАТА
# -----------------------------------------------------------------------------
#   /groups/{id}/messages : лента (курсор ?before=) и отправка
#   /messages/{id}        : правка / удаление, реакции
#   /groups/{id}/read, /messages/unread: отметки о прочтении

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from wellgroups.db import get_db
from wellgroups.models.user import User
from wellgroups.schemas.message import (
    MessageCreate,
    MessageEdit,
    MessageOut,
    MessagePageOut,
    ReactionIn,
    ReactionOut,
    UnreadOut,
)
from wellgroups.services import group_messaging
from wellgroups.utils.identity import get_current_user

router = APIRouter(tags=["Чат группы"])


@router.get("/groups/{group_id}/messages", response_model=MessagePageOut)
def list_messages(
    group_id: int,
    limit: int = Query(group_messaging.DEFAULT_PAGE_LIMIT, ge=1, le=group_messaging.MAX_PAGE_LIMIT),
    before: Optional[int] = Query(None, description="id сообщения-курсора: вернуть более старые"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return group_messaging.list_messages(
        db, group_id, current_user.id, limit=limit, before_message_id=before
    )


@router.post("/groups/{group_id}/messages", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
def send_message(
    group_id: int,
    body: MessageCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return group_messaging.send_message(
        db, group_id, current_user.id, body.content, body.message_type, body.reply_to_id
    )


@router.post("/groups/{group_id}/read")
def mark_read(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    last_id = group_messaging.mark_read(db, group_id, current_user.id)
    return {"group_id": group_id, "last_read_message_id": last_id}


@router.get("/messages/unread", response_model=UnreadOut)
def unread(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return group_messaging.unread_counts(db, current_user.id)


@router.patch("/messages/{message_id}", response_model=MessageOut)
def edit_message(
    message_id: int,
    body: MessageEdit,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Править может только автор и только текстовое сообщение."""
    return group_messaging.edit_message(db, message_id, current_user.id, body.content)


@router.delete("/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_message(
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Автор или спонсор группы."""
    group_messaging.delete_message(db, message_id, current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/messages/{message_id}/reactions", response_model=ReactionOut)
def react(
    message_id: int,
    body: ReactionIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Переключатель: повторная такая же реакция снимает её."""
    return group_messaging.react(db, message_id, current_user.id, body.emoji)
