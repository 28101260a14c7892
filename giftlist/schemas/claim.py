# giftlist/schemas/claim.py

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from giftlist.models.item import ItemStatus
from giftlist.schemas.user import UserSummary


class ClaimCreate(BaseModel):
    item_id: str = Field(..., min_length=1, alias="itemId")
    # None: полная бронь; иначе сумма в центах
    amount: Optional[int] = Field(default=None, gt=0)

    class Config:
        populate_by_name = True


class ClaimOut(BaseModel):
    id: str
    item_id: str
    user_id: str
    amount: Optional[int] = None
    expires_at: Optional[datetime] = None
    purchased_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ClaimedItemSummary(BaseModel):
    id: str
    name: str
    url: Optional[str] = None
    price: Optional[int] = None
    image_url: Optional[str] = None
    status: ItemStatus
    owner: UserSummary


class MyClaimOut(ClaimOut):
    item: ClaimedItemSummary
