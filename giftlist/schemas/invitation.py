# giftlist/schemas/invitation.py

import re
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, field_validator

from giftlist.models.group_member import MemberRole
from giftlist.models.invitation import InvitationStatus
from giftlist.schemas.group import GroupMemberOut
from giftlist.schemas.user import UserSummary

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class InvitationCreate(BaseModel):
    email: str
    role: Literal["member", "admin"] = "member"

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        v = v.strip().lower()
        if not _EMAIL_RE.match(v):
            raise ValueError("Invalid email address")
        return v


class InvitationOut(BaseModel):
    id: str
    group_id: str
    inviter_id: str
    invitee_email: str
    role: MemberRole
    token: str
    status: InvitationStatus
    expires_at: datetime
    created_at: datetime

    class Config:
        from_attributes = True


class InvitationGroupSummary(BaseModel):
    id: str
    name: str
    description: str | None = None

    class Config:
        from_attributes = True


class MyInvitationOut(BaseModel):
    id: str
    token: str
    role: MemberRole
    expires_at: datetime
    created_at: datetime
    group: InvitationGroupSummary
    inviter: UserSummary


class InvitationAcceptedOut(BaseModel):
    invitation: InvitationOut
    membership: GroupMemberOut
