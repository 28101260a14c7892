# giftlist/schemas/group.py

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from giftlist.models.group_member import MemberRole
from giftlist.schemas.user import UserSummary


class GroupCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)


class GroupUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)


class GroupOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    owner_id: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class GroupListItemOut(GroupOut):
    role: MemberRole
    member_count: int


class GroupMemberOut(BaseModel):
    id: str
    group_id: str
    user: UserSummary
    role: MemberRole
    joined_at: datetime

    class Config:
        from_attributes = True


class GroupDetailOut(GroupOut):
    role: MemberRole
    members: list[GroupMemberOut]
