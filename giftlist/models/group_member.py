# giftlist/models/group_member.py
# Модель участника группы + уникальность (group_id, user_id) + роль

import enum

from sqlalchemy import Column, String, ForeignKey, UniqueConstraint, DateTime, Enum, Index, text
from sqlalchemy.orm import relationship

from giftlist.db import Base
from giftlist.utils.ids import new_id, utcnow


class MemberRole(enum.Enum):
    owner = "owner"
    admin = "admin"
    member = "member"


class GroupMember(Base):
    __tablename__ = "group_members"

    id = Column(String(32), primary_key=True, default=new_id)
    group_id = Column(String(32), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    role = Column(
        Enum(MemberRole, name="member_role"),
        nullable=False,
        default=MemberRole.member,
        server_default=text("'member'"),
    )
    joined_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_members_group_user"),
        Index("ix_group_members_user_group", "user_id", "group_id"),
    )

    group = relationship("Group")
    user = relationship("User")
