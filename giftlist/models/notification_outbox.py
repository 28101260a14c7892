# giftlist/models/notification_outbox.py
# Исходящая очередь уведомлений: строка пишется в той же транзакции, что и
# структурное изменение, доставка в notifications идёт отдельной сессией.

import enum

from sqlalchemy import Column, Integer, String, DateTime, Enum, UniqueConstraint, Index, text

from giftlist.db import Base
from giftlist.models.notification import JSONType
from giftlist.utils.ids import new_id, utcnow


class OutboxStatus(enum.Enum):
    pending = "pending"
    processing = "processing"
    sent = "sent"
    failed = "failed"


class NotificationOutbox(Base):
    __tablename__ = "notification_outbox"

    id = Column(String(32), primary_key=True, default=new_id)

    # получатель (без FK: строка может пережить удаление пользователя, доставка её пропустит)
    user_id = Column(String(32), nullable=False)

    type = Column(String(64), nullable=False)
    title = Column(String(255), nullable=False)
    body = Column(String(1000), nullable=False)
    data = Column(JSONType, nullable=True, default=dict)

    status = Column(
        Enum(OutboxStatus, name="outbox_status"),
        nullable=False,
        default=OutboxStatus.pending,
        server_default=text("'pending'"),
    )
    attempts = Column(Integer, nullable=False, default=0, server_default=text("0"))
    last_error = Column(String(1000), nullable=True)

    # идемпотентный ключ, чтобы не ставить дубль при повторе каскада
    idempotency_key = Column(String(128), nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    # момент перехода в processing: по нему requeue_stuck находит зависшие строки
    processing_started_at = Column(DateTime, nullable=True)
    sent_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_notification_outbox_idempotency_key"),
        Index("ix_notification_outbox_status_created", "status", "created_at"),
        Index("ix_notification_outbox_status_processing", "status", "processing_started_at"),
    )

    def __repr__(self) -> str:
        return f"<NotificationOutbox id={self.id} type={self.type} user={self.user_id} status={self.status}>"
