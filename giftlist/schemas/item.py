# giftlist/schemas/item.py
# Ответы владельцу позиции: никаких полей о бронях здесь нет и быть не должно.

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from giftlist.models.item import ItemStatus


class ItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    url: Optional[str] = Field(default=None, max_length=2048)
    price: Optional[int] = Field(default=None, ge=0, description="Цена в центах")
    notes: Optional[str] = Field(default=None, max_length=1000)
    image_url: Optional[str] = Field(default=None, max_length=2048, alias="imageUrl")
    priority: Optional[int] = Field(default=None, ge=1, le=5)

    class Config:
        populate_by_name = True


class ItemUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    url: Optional[str] = Field(default=None, max_length=2048)
    price: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = Field(default=None, max_length=1000)
    image_url: Optional[str] = Field(default=None, max_length=2048, alias="imageUrl")
    priority: Optional[int] = Field(default=None, ge=1, le=5)

    class Config:
        populate_by_name = True


class ItemOut(BaseModel):
    id: str
    owner_id: str
    name: str
    url: Optional[str] = None
    price: Optional[int] = None
    notes: Optional[str] = None
    image_url: Optional[str] = None
    priority: Optional[int] = None
    status: ItemStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
