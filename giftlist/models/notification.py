# giftlist/models/notification.py
from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Index, JSON, text
from sqlalchemy.dialects.postgresql import JSONB

from giftlist.db import Base
from giftlist.utils.ids import new_id, utcnow

# JSONB на PostgreSQL, обычный JSON на SQLite
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(32), primary_key=True, default=new_id)

    # получатель уведомления
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # тип: claim_released / item_claimed / member_joined / ...
    type = Column(String(64), nullable=False)
    title = Column(String(255), nullable=False)
    body = Column(String(1000), nullable=False)

    # произвольные данные (itemId, groupId, reason, ...)
    data = Column(JSONType, nullable=True, default=dict)

    # единственное изменяемое поле
    read = Column(Boolean, nullable=False, default=False, server_default=text("false"))

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "read"),
        Index("ix_notifications_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Notification id={self.id} type={self.type} user={self.user_id} read={self.read}>"
