# giftlist/models/item_recipient.py
# Ребро "позиция расшарена в группу" (item_id, group_id): граница видимости.

from sqlalchemy import Column, String, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship

from giftlist.db import Base
from giftlist.utils.ids import new_id, utcnow


class ItemRecipient(Base):
    __tablename__ = "item_recipients"

    id = Column(String(32), primary_key=True, default=new_id)
    item_id = Column(String(32), ForeignKey("items.id", ondelete="CASCADE"), nullable=False, index=True)
    group_id = Column(String(32), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("item_id", "group_id", name="uq_item_recipients_item_group"),
    )

    item = relationship("Item")
    group = relationship("Group")
