# giftlist/schemas/recipient.py

from datetime import datetime

from pydantic import BaseModel, Field


class RecipientsChange(BaseModel):
    group_ids: list[str] = Field(..., min_length=1, alias="groupIds")

    class Config:
        populate_by_name = True


class RecipientOut(BaseModel):
    id: str
    item_id: str
    group_id: str
    group_name: str
    created_at: datetime


class RecipientsRemovedOut(BaseModel):
    removed_group_ids: list[str]
    released_claims: int
