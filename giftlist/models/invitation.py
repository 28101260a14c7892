# giftlist/models/invitation.py

import enum

from sqlalchemy import Column, String, ForeignKey, DateTime, Enum, Index, text
from sqlalchemy.orm import relationship

from giftlist.db import Base
from giftlist.models.group_member import MemberRole
from giftlist.utils.ids import new_id, utcnow


class InvitationStatus(enum.Enum):
    pending = "pending"
    accepted = "accepted"
    declined = "declined"
    expired = "expired"


class Invitation(Base):
    """
    Приглашение в группу по email.
    Статус меняется только из pending в один из терминальных
    (accepted / declined / expired). Токен: единственный ключ для accept/decline.
    """
    __tablename__ = "invitations"

    id = Column(String(32), primary_key=True, default=new_id)
    group_id = Column(String(32), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    inviter_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    invitee_email = Column(String(320), nullable=False, index=True)
    token = Column(String(64), unique=True, index=True, nullable=False)
    role = Column(
        Enum(MemberRole, name="member_role"),
        nullable=False,
        default=MemberRole.member,
        server_default=text("'member'"),
    )
    status = Column(
        Enum(InvitationStatus, name="invitation_status"),
        nullable=False,
        default=InvitationStatus.pending,
        server_default=text("'pending'"),
    )
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_invitations_email_status", "invitee_email", "status"),
    )

    group = relationship("Group", foreign_keys=[group_id])
    inviter = relationship("User", foreign_keys=[inviter_id])

    def __repr__(self):
        return f"<Invitation(id={self.id}, group_id={self.group_id}, email={self.invitee_email}, status={self.status})>"
