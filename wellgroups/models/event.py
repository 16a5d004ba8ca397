# wellgroups/models/event.py
from sqlalchemy import Column, Integer, String, DateTime, JSON, func, Index
from sqlalchemy.dialects.postgresql import JSONB
from wellgroups.db import Base


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)

    # кто совершил действие
    actor_id = Column(Integer, nullable=False)

    # к какой группе относится; без FK: лог переживает удаление группы
    group_id = Column(Integer, nullable=True)

    # над кем действие (кик, передача спонсорства): может быть NULL
    target_user_id = Column(Integer, nullable=True)

    # тип события
    type = Column(String(64), nullable=False)

    # произвольные данные события
    data = Column(JSON().with_variant(JSONB, "postgresql"), nullable=True, default=dict)

    created_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_events_group_created", "group_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Event id={self.id} type={self.type} actor={self.actor_id} group={self.group_id}>"
