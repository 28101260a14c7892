# giftlist/schemas/webhook.py

from typing import Literal, Optional

from pydantic import BaseModel, Field


class AuthWebhookUser(BaseModel):
    id: str = Field(..., min_length=1)
    email: Optional[str] = None
    name: Optional[str] = None
    avatar_url: Optional[str] = Field(default=None, alias="avatarUrl")

    class Config:
        populate_by_name = True


class AuthWebhookEvent(BaseModel):
    type: Literal["user.created", "user.updated", "user.deleted"]
    data: AuthWebhookUser
