# wellgroups/models/group_message.py
# Сообщение группового чата. Порядок в ленте: (created_at, id).

import enum

from sqlalchemy import Column, Integer, Text, ForeignKey, DateTime, Enum, Index, func
from sqlalchemy.orm import relationship
from wellgroups.db import Base

# sender_id IS NULL <=> отправитель "system"
SYSTEM_SENDER = "system"


class MessageType(enum.Enum):
    text = "text"
    system_notification = "system_notification"


class GroupMessage(Base):
    __tablename__ = "group_messages"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)

    sender_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    content = Column(Text, nullable=False)
    message_type = Column(
        Enum(MessageType, name="message_type"),
        nullable=False,
        default=MessageType.text,
    )

    # ответ на сообщение той же группы (один уровень, не дерево)
    reply_to_id = Column(Integer, ForeignKey("group_messages.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    edited_at = Column(DateTime(timezone=True), nullable=True)

    reactions = relationship(
        "MessageReaction",
        back_populates="message",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_group_messages_group_order", "group_id", "created_at", "id"),
    )

    @property
    def sender(self):
        return self.sender_id if self.sender_id is not None else SYSTEM_SENDER

    def __repr__(self) -> str:
        return f"<GroupMessage id={self.id} group={self.group_id} sender={self.sender} type={self.message_type}>"
