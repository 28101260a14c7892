# giftlist/models/group.py
# -----------------------------------------------------------------------------
# МОДЕЛЬ: Group (SQLAlchemy)
# -----------------------------------------------------------------------------

from __future__ import annotations

from sqlalchemy import Column, String, ForeignKey, DateTime
from sqlalchemy.orm import relationship

from giftlist.db import Base
from giftlist.utils.ids import new_id, utcnow


class Group(Base):
    __tablename__ = "groups"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False, index=True)
    description = Column(String(500), nullable=True)

    # создатель группы; он же единственный участник с ролью owner
    owner_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    owner = relationship("User")

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Group(id={self.id}, name={self.name!r}, owner_id={self.owner_id})>"
