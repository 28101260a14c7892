# giftlist/schemas/notification.py

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class NotificationOut(BaseModel):
    id: str
    type: str
    title: str
    body: str
    data: Optional[Dict[str, Any]] = None
    read: bool
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationPage(BaseModel):
    items: list[NotificationOut]
    next_cursor: Optional[str] = None


class MarkReadIn(BaseModel):
    ids: list[str] = Field(..., min_length=1)


class NotificationPatch(BaseModel):
    read: bool


class UnreadCountOut(BaseModel):
    count: int


class CenterCountsOut(BaseModel):
    notifications: int
    invitations: int
    total: int
