# giftlist/jobs/claim_expiration.py
# ИСТЕЧЕНИЕ БРОНЕЙ (ПЕРИОДИЧЕСКИЙ ПРОГОН)
# -----------------------------------------------------------------------------
# Что делает этот модуль:
#   • шлёт одно напоминание «бронь скоро истечёт» на каждую бронь, у которой
#     expires_at попадает в окно CLAIM_REMINDER_DAYS (claims.reminded_at);
#   • физически удаляет просроченные брони: автору: «бронь истекла»,
#     остальным получателям (никогда не владельцу): «позиция снова доступна»;
#   • возвращает в работу застрявшие строки outbox и доставляет pending.
#
# Как запускать:
#   Вариант А) Одноразовый прогон (cron, CI/CD раннер):
#       >>> from giftlist.jobs.claim_expiration import expire_claims_once
#       >>> expire_claims_once()
#
#   Вариант Б) Фоновая задача в процессе API, стартует на событии FastAPI startup
#       при CLAIM_SWEEP_ENABLED=1, период CLAIM_SWEEP_INTERVAL_MINUTES.
#
# Чтение и запись считают просроченную бронь снятой и без этого прогона;
# прогон нужен для уведомлений и чистки таблицы.

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from giftlist.services.claims import release_expired_claims, send_expiring_reminders
from giftlist.services.notifications import deliver_pending, requeue_stuck
from giftlist.utils.ids import utcnow

log = logging.getLogger(__name__)

CLAIM_SWEEP_INTERVAL_MINUTES = int(os.getenv("CLAIM_SWEEP_INTERVAL_MINUTES", "60"))


def expire_claims_once(
    session_factory: Optional[Callable[[], Session]] = None,
    *,
    now: Optional[datetime] = None,
) -> dict:
    """
    Одноразовый прогон:
      - открывает новую сессию,
      - ставит напоминания и снимает просроченные брони,
      - коммитит одним разом,
      - доставляет outbox,
      - возвращает сводку.
    """
    if session_factory is None:
        from giftlist.db import SessionLocal
        session_factory = SessionLocal

    now = now or utcnow()
    with session_factory() as db:
        reminded = send_expiring_reminders(db, now)
        released = release_expired_claims(db, now)
        db.commit()
        requeued = requeue_stuck(db)

    delivery = deliver_pending(session_factory)

    summary = {
        "reminders_sent": len(reminded),
        "claims_released": len(released),
        "released_ids": released,
        "outbox_requeued": requeued,
        "outbox_delivered": delivery["delivered"],
    }
    log.info("claim-expiration summary: %s", summary)
    return summary


async def _loop_periodic(interval_minutes: int) -> None:
    """
    Бесконечный цикл:
      - запускаем expire_claims_once() в пуле потоков (синхронная сессия),
      - в случае исключений: логируем и продолжаем,
      - спим interval_minutes.
    """
    while True:
        try:
            await asyncio.to_thread(expire_claims_once)
        except Exception:
            log.exception("claim-expiration loop iteration failed")
        await asyncio.sleep(interval_minutes * 60)


def start_claim_expiration_loop(interval_minutes: Optional[int] = None) -> None:
    """
    Запускает фоновую задачу в текущем asyncio-цикле.
    Вызывается из FastAPI startup при CLAIM_SWEEP_ENABLED=1.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        # нет активного event loop (однократный вызов из скрипта)
        return
    loop.create_task(_loop_periodic(interval_minutes or CLAIM_SWEEP_INTERVAL_MINUTES))
