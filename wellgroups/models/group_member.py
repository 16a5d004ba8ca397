# wellgroups/models/group_member.py
# Модель участника группы + уникальность (group_id, user_id) + роль

import enum

from sqlalchemy import Column, Integer, ForeignKey, UniqueConstraint, DateTime, Enum, Index, func
from sqlalchemy.orm import relationship
from ..db import Base


class GroupRole(enum.Enum):
    member = "member"
    sponsor = "sponsor"
    super_admin = "super_admin"


class GroupMember(Base):
    __tablename__ = "group_members"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    role = Column(Enum(GroupRole, name="group_role"), nullable=False, default=GroupRole.member)

    joined_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    last_active_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_members_group_user"),
        Index("ix_group_members_group_role", "group_id", "role"),
    )

    group = relationship("Group", back_populates="members")
    user = relationship("User")

    @property
    def name(self):
        # отображаемое имя для списков участников
        return self.user.name if self.user is not None else None
