# giftlist/services/notifications.py
# -----------------------------------------------------------------------------
# ДИСПЕТЧЕР УВЕДОМЛЕНИЙ
# -----------------------------------------------------------------------------
#  • enqueue_notification / notify_users: пишут строки outbox в ТОЙ ЖЕ транзакции,
#    что и бизнес-операция. Не делают commit.
#  • deliver_pending: переносит pending-строки outbox в notifications отдельной
#    сессией (фоновая задача после ответа + периодический прогон).
#  • create_notification: прямое синхронное уведомление после основного commit;
#    ошибка логируется и не ломает операцию.

from __future__ import annotations

import logging
import os
from datetime import timedelta
from typing import Any, Callable, Dict, Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from giftlist.models.notification import Notification
from giftlist.models.notification_outbox import NotificationOutbox, OutboxStatus
from giftlist.models.user import User
from giftlist.utils.ids import utcnow

log = logging.getLogger(__name__)

OUTBOX_MAX_ATTEMPTS = int(os.getenv("OUTBOX_MAX_ATTEMPTS", "5"))

# Типы уведомлений
GROUP_INVITATION = "group_invitation"
INVITATION_ACCEPTED = "invitation_accepted"
ITEM_CLAIMED = "item_claimed"
ITEM_PURCHASED = "item_purchased"
ITEM_UNPURCHASED = "item_unpurchased"
ITEM_DELETED = "item_deleted"
ITEM_RECEIVED = "item_received"
CLAIM_RELEASED = "claim_released"
MEMBER_JOINED = "member_joined"
MEMBER_LEFT = "member_left"
REMINDER = "reminder"


def _insert_ignoring_duplicates(db: Session, payload: Dict[str, Any]) -> None:
    """
    INSERT ... ON CONFLICT (idempotency_key) DO NOTHING для PostgreSQL и SQLite.
    """
    dialect = db.get_bind().dialect.name
    insert_fn = pg_insert if dialect == "postgresql" else sqlite_insert
    stmt = (
        insert_fn(NotificationOutbox.__table__)
        .values(**payload)
        .on_conflict_do_nothing(index_elements=["idempotency_key"])
    )
    db.execute(stmt)


def enqueue_notification(
    db: Session,
    *,
    user_id: str,
    type: str,
    title: str,
    body: str,
    data: Optional[Dict[str, Any]] = None,
    idempotency_key: Optional[str] = None,
) -> None:
    """
    Ставит уведомление в outbox. Вызывается в той же транзакции, что и бизнес-операция.
    Не делает commit. Повтор с тем же idempotency_key молча игнорируется.
    """
    payload = {
        "user_id": user_id,
        "type": type,
        "title": title,
        "body": body,
        "data": (data or {}),
        "idempotency_key": idempotency_key,
    }

    if idempotency_key:
        _insert_ignoring_duplicates(db, payload)
        return

    db.add(NotificationOutbox(**payload))


def notify_users(
    db: Session,
    user_ids: Iterable[str],
    *,
    exclude: Iterable[Optional[str]] = (),
    type: str,
    title: str,
    body: str,
    data: Optional[Dict[str, Any]] = None,
    key_prefix: Optional[str] = None,
) -> int:
    """
    Пакетная постановка: «уведомить всех, кроме {владельца, автора действия}».
    Возвращает число поставленных строк.
    """
    skip = {uid for uid in exclude if uid}
    count = 0
    for uid in sorted(set(user_ids) - skip):
        enqueue_notification(
            db,
            user_id=uid,
            type=type,
            title=title,
            body=body,
            data=data,
            idempotency_key=f"{key_prefix}:{uid}" if key_prefix else None,
        )
        count += 1
    return count


def create_notification(
    db: Session,
    *,
    user_id: str,
    type: str,
    title: str,
    body: str,
    data: Optional[Dict[str, Any]] = None,
) -> Optional[Notification]:
    """
    Прямая запись уведомления с собственным commit.
    Вызывать только ПОСЛЕ commit основной операции: при ошибке откатываем
    только само уведомление и возвращаем None.
    """
    try:
        n = Notification(user_id=user_id, type=type, title=title, body=body, data=(data or {}))
        db.add(n)
        db.commit()
        db.refresh(n)
        return n
    except Exception:
        db.rollback()
        log.exception("failed to create notification type=%s for user %s", type, user_id)
        return None


# =========================
# ДОСТАВКА OUTBOX
# =========================

def _claim_row(db: Session, row_id: str) -> bool:
    """
    Забираем строку условным UPDATE pending -> processing.
    Конкурентный доставщик получит rowcount == 0 и пропустит её.
    """
    res = db.execute(
        update(NotificationOutbox)
        .where(NotificationOutbox.id == row_id, NotificationOutbox.status == OutboxStatus.pending)
        .values(status=OutboxStatus.processing, processing_started_at=utcnow())
    )
    db.commit()
    return res.rowcount == 1


def _deliver_row(db: Session, row: NotificationOutbox) -> bool:
    """
    Создаёт Notification из строки outbox. False: получатель уже удалён.
    """
    if db.get(User, row.user_id) is None:
        row.status = OutboxStatus.failed
        row.last_error = "recipient no longer exists"
        return False

    db.add(
        Notification(
            user_id=row.user_id,
            type=row.type,
            title=row.title,
            body=row.body,
            data=row.data or {},
        )
    )
    row.status = OutboxStatus.sent
    row.sent_at = utcnow()
    return True


def _record_failure(db: Session, row_id: str, error: Exception) -> None:
    row = db.get(NotificationOutbox, row_id)
    if row is None:
        return
    row.attempts = (row.attempts or 0) + 1
    row.last_error = str(error)[:1000]
    row.status = OutboxStatus.failed if row.attempts >= OUTBOX_MAX_ATTEMPTS else OutboxStatus.pending
    row.processing_started_at = None
    db.commit()


def deliver_pending(session_factory: Optional[Callable[[], Session]] = None, *, limit: int = 500) -> dict:
    """
    Один проход доставки:
      - открывает новую сессию,
      - берёт pending-строки в порядке постановки,
      - каждую доставляет и коммитит отдельно,
      - ошибки логирует, строка возвращается в pending (или failed после лимита попыток).
    """
    if session_factory is None:
        from giftlist.db import SessionLocal
        session_factory = SessionLocal

    delivered = skipped = failed = 0
    with session_factory() as db:
        row_ids = list(
            db.scalars(
                select(NotificationOutbox.id)
                .where(NotificationOutbox.status == OutboxStatus.pending)
                .order_by(NotificationOutbox.created_at.asc(), NotificationOutbox.id.asc())
                .limit(limit)
            ).all()
        )

        for row_id in row_ids:
            if not _claim_row(db, row_id):
                continue
            try:
                row = db.get(NotificationOutbox, row_id)
                if _deliver_row(db, row):
                    delivered += 1
                else:
                    skipped += 1
                db.commit()
            except Exception as e:
                db.rollback()
                failed += 1
                log.exception("outbox delivery failed for row %s", row_id)
                _record_failure(db, row_id, e)

    summary = {"delivered": delivered, "skipped": skipped, "failed": failed}
    if row_ids:
        log.info("outbox delivery summary: %s", summary)
    return summary


def requeue_stuck(db: Session, *, older_than: timedelta = timedelta(minutes=10)) -> int:
    """
    Возвращает в pending строки, застрявшие в processing дольше older_than
    (процесс упал посреди доставки). Отсчёт идёт от processing_started_at.
    Вызывается периодическим прогоном до deliver_pending.
    """
    res = db.execute(
        update(NotificationOutbox)
        .where(
            NotificationOutbox.status == OutboxStatus.processing,
            NotificationOutbox.processing_started_at < utcnow() - older_than,
        )
        .values(status=OutboxStatus.pending, processing_started_at=None)
    )
    db.commit()
    return res.rowcount or 0
