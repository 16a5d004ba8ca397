# wellgroups/models/read_marker.py
# Последнее прочитанное сообщение пользователя в группе (только для бейджа непрочитанных).

from sqlalchemy import Column, Integer, ForeignKey, DateTime, UniqueConstraint, func
from wellgroups.db import Base


class GroupReadMarker(Base):
    __tablename__ = "group_read_markers"

    id = Column(Integer, primary_key=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # без FK: сообщение может быть удалено, маркер остаётся валидной границей
    last_read_message_id = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "group_id", name="uq_group_read_markers_user_group"),
    )
