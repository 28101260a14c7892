# giftlist/schemas/shared_item.py

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from giftlist.schemas.user import UserSummary


class SharedVia(BaseModel):
    group_id: str
    group_name: str


class VisibleClaimOut(BaseModel):
    id: str
    user: UserSummary
    amount: Optional[int] = None
    is_purchased: bool
    is_mine: bool
    expires_at: Optional[datetime] = None
    created_at: datetime


class SharedItemOut(BaseModel):
    id: str
    name: str
    url: Optional[str] = None
    price: Optional[int] = None
    notes: Optional[str] = None
    image_url: Optional[str] = None
    priority: Optional[int] = None
    status: str
    created_at: datetime
    owner: UserSummary
    shared_via: list[SharedVia]
    claims: list[VisibleClaimOut]
    claimable_amount: Optional[int] = None
