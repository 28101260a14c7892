# giftlist/routers/notifications.py
# РОУТЕР УВЕДОМЛЕНИЙ (модель чтения для поллинга)
# -----------------------------------------------------------------------------
#  - GET   /notifications                : курсорная пагинация (новые первыми)
#  - GET   /notifications/unread-count   : бейдж
#  - POST  /notifications/mark-read      : пометить выбранные
#  - POST  /notifications/mark-all-read  : пометить все
#  - PATCH /notifications/{id}           : флаг read (только своё)
#  - GET   /notification-center/counts   : {notifications, invitations, total}
# Курсор: id последнего уведомления предыдущей страницы; порядок (created_at, id) DESC.

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm import Session

from giftlist.db import get_db
from giftlist.models.notification import Notification
from giftlist.models.user import User
from giftlist.schemas.notification import (
    CenterCountsOut,
    MarkReadIn,
    NotificationOut,
    NotificationPage,
    NotificationPatch,
    UnreadCountOut,
)
from giftlist.services.invitations import count_my_pending_invitations
from giftlist.utils.auth_dep import get_current_user
from giftlist.utils.errors import err

router = APIRouter()

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def _unread_count(db: Session, user_id: str) -> int:
    return int(
        db.scalar(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.read.is_(False),
            )
        )
        or 0
    )


def _get_own_notification_or_404(db: Session, notification_id: str, user_id: str) -> Notification:
    n = db.get(Notification, notification_id)
    if not n or n.user_id != user_id:
        raise HTTPException(status_code=404, detail=err("notification_not_found", "Notification not found"))
    return n


@router.get("/notifications", response_model=NotificationPage)
def list_notifications(
    cursor: Optional[str] = Query(None),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    unread_only: bool = Query(False, alias="unreadOnly"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    stmt = select(Notification).where(Notification.user_id == current_user.id)
    if unread_only:
        stmt = stmt.where(Notification.read.is_(False))

    if cursor:
        anchor = db.get(Notification, cursor)
        if not anchor or anchor.user_id != current_user.id:
            raise HTTPException(status_code=400, detail=err("invalid_cursor", "Invalid cursor"))
        stmt = stmt.where(
            or_(
                Notification.created_at < anchor.created_at,
                and_(Notification.created_at == anchor.created_at, Notification.id < anchor.id),
            )
        )

    rows = list(
        db.scalars(
            stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit + 1)
        ).all()
    )
    has_more = len(rows) > limit
    page = rows[:limit]
    return NotificationPage(
        items=[NotificationOut.model_validate(n) for n in page],
        next_cursor=page[-1].id if has_more and page else None,
    )


@router.get("/notifications/unread-count", response_model=UnreadCountOut)
def unread_count(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return UnreadCountOut(count=_unread_count(db, current_user.id))


@router.post("/notifications/mark-read", response_model=UnreadCountOut)
def mark_read(
    payload: MarkReadIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    # чужие id молча не затрагиваются: фильтр по user_id
    db.execute(
        update(Notification)
        .where(Notification.user_id == current_user.id, Notification.id.in_(payload.ids))
        .values(read=True)
    )
    db.commit()
    return UnreadCountOut(count=_unread_count(db, current_user.id))


@router.post("/notifications/mark-all-read", response_model=UnreadCountOut)
def mark_all_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    db.execute(
        update(Notification)
        .where(Notification.user_id == current_user.id, Notification.read.is_(False))
        .values(read=True)
    )
    db.commit()
    return UnreadCountOut(count=0)


@router.patch("/notifications/{notification_id}", response_model=NotificationOut)
def patch_notification(
    notification_id: str,
    payload: NotificationPatch,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    n = _get_own_notification_or_404(db, notification_id, current_user.id)
    n.read = payload.read
    db.commit()
    db.refresh(n)
    return n


@router.get("/notification-center/counts", response_model=CenterCountsOut)
def notification_center_counts(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    notifications = _unread_count(db, current_user.id)
    invitations = count_my_pending_invitations(db, current_user)
    return CenterCountsOut(notifications=notifications, invitations=invitations, total=notifications + invitations)
