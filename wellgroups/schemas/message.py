# wellgroups/schemas/message.py
# -----------------------------------------------------------------------------
# СХЕМЫ Pydantic: сообщения группового чата
# -----------------------------------------------------------------------------

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from ..models.group_message import MessageType


class MessageCreate(BaseModel):
    content: str = Field(..., description="Текст сообщения")
    message_type: MessageType = Field(MessageType.text, description="text | system_notification")
    reply_to_id: Optional[int] = Field(None, description="Ответ на сообщение этой же группы")


class MessageEdit(BaseModel):
    content: str


class ReactionIn(BaseModel):
    emoji: str = Field(..., min_length=1, max_length=32)


class ReactionOut(BaseModel):
    message_id: int
    emoji: str
    result: Literal["added", "removed"]
    # сводка реакций сообщения после переключения
    reactions: Dict[str, List[int]] = Field(default_factory=dict)


class MessageOut(BaseModel):
    id: int
    group_id: int
    # int: id пользователя, "system": системное уведомление
    sender_id: Union[int, Literal["system"]] = Field(..., validation_alias="sender")
    content: str
    message_type: MessageType
    reply_to_id: Optional[int] = None
    created_at: datetime
    edited_at: Optional[datetime] = None
    # {emoji: [user_id, ...]}
    reactions: Dict[str, List[int]] = Field(default_factory=dict)

    @field_validator("reactions", mode="before")
    @classmethod
    def _group_reactions(cls, v):
        if isinstance(v, dict):
            return v
        out: Dict[str, List[int]] = {}
        for r in sorted(v or [], key=lambda r: (r.created_at is None, r.id)):
            out.setdefault(r.emoji, []).append(r.user_id)
        return out

    class Config:
        from_attributes = True
        populate_by_name = True


class MessagePageOut(BaseModel):
    messages: List[MessageOut] = Field(default_factory=list, description="По возрастанию времени")
    has_more: bool = Field(False, description="Есть ли сообщения старше первого в пачке")
    oldest_message_id: Optional[int] = Field(None, description="Курсор для следующей (более старой) страницы")


class UnreadOut(BaseModel):
    total: int
    by_group: Dict[int, int] = Field(default_factory=dict)
