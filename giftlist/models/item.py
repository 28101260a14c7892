# giftlist/models/item.py
# -----------------------------------------------------------------------------
# МОДЕЛЬ: Item (позиция вишлиста)
# -----------------------------------------------------------------------------

from __future__ import annotations

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    ForeignKey,
    Enum,
    DateTime,
    CheckConstraint,
    Index,
    text,
)
from sqlalchemy.orm import relationship

from giftlist.db import Base
from giftlist.utils.ids import new_id, utcnow


class ItemStatus(enum.Enum):
    active = "active"
    received = "received"
    archived = "archived"


class Item(Base):
    __tablename__ = "items"

    id = Column(String(32), primary_key=True, default=new_id)
    owner_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    owner = relationship("User")

    name = Column(String(255), nullable=False)
    url = Column(String(2048), nullable=True)

    # цена в минимальных единицах валюты (центы); NULL: цена не указана
    price = Column(Integer, nullable=True, comment="Цена в центах")
    notes = Column(String(1000), nullable=True)
    image_url = Column(String(2048), nullable=True)
    priority = Column(Integer, nullable=True, comment="Приоритет 1..5")

    status = Column(
        Enum(ItemStatus, name="item_status"),
        nullable=False,
        default=ItemStatus.active,
        server_default=text("'active'"),
        comment="Статус: active|received|archived",
    )

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("price IS NULL OR price >= 0", name="ck_items_price_non_negative"),
        CheckConstraint("priority IS NULL OR (priority >= 1 AND priority <= 5)", name="ck_items_priority_range"),
        Index("ix_items_owner_status", "owner_id", "status"),
    )

    def __repr__(self):
        return f"<Item(id={self.id}, owner_id={self.owner_id}, name={self.name!r}, price={self.price})>"
