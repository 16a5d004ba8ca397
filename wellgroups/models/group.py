# wellgroups/models/group.py
# -----------------------------------------------------------------------------
# МОДЕЛЬ: Group (SQLAlchemy)
# -----------------------------------------------------------------------------

from __future__ import annotations

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    ForeignKey,
    Enum,
    DateTime,
    Index,
    JSON,
    CheckConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from ..db import Base

DEFAULT_MAX_MEMBERS = 10


class GroupStatus(enum.Enum):
    active = "active"
    archived = "archived"


class Group(Base):
    __tablename__ = "groups"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, index=True)
    description = Column(String, nullable=False, default="")

    # 6 символов [A-Z0-9], без дефиса; на экране: XXX-XXX
    invite_code = Column(String(6), nullable=False, unique=True, index=True)

    # текущий спонсор группы (дублирует роль sponsor в group_members)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    owner = relationship("User")

    status = Column(
        Enum(GroupStatus, name="group_status"),
        nullable=False,
        default=GroupStatus.active,
        server_default=text("'active'"),
        comment="Статус группы: active|archived",
    )

    max_members = Column(
        Integer,
        nullable=False,
        default=DEFAULT_MAX_MEMBERS,
        comment="Вместимость, фиксируется при создании",
    )
    current_member_count = Column(
        Integer,
        nullable=False,
        default=1,
        comment="Счётчик участников; меняется только вместе со строками group_members",
    )

    settings = Column(
        JSON().with_variant(JSONB, "postgresql"),
        nullable=False,
        default=dict,
        comment="GroupSettings: видимость, цели активности, уведомления",
    )

    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=func.now(), onupdate=func.now())
    archived_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="Когда перевели в archived (UTC)",
    )

    members = relationship("GroupMember", back_populates="group")

    __table_args__ = (
        CheckConstraint(
            "current_member_count > 0 AND current_member_count <= max_members",
            name="ck_groups_member_count_bounds",
        ),
        Index("ix_groups_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Group id={self.id} name={self.name} code={self.invite_code} members={self.current_member_count}/{self.max_members}>"
