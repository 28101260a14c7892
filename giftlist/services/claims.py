# giftlist/services/claims.py
# -----------------------------------------------------------------------------
# ДВИЖОК БРОНЕЙ (Claim Engine)
# -----------------------------------------------------------------------------
# Инварианты по каждой позиции:
#   • не больше одной полной брони (amount IS NULL), и она исключает все прочие;
#   • сумма частичных броней <= items.price;
#   • просроченная бронь считается снятой для всех проверок, даже до прогона sweep.
# Гонки:
#   • две полные брони одновременно: частичный уникальный индекс uq_claims_item_full,
#     проигравший получает IntegrityError -> 409;
#   • перебор суммы частичных: пересчёт под блокировкой строки позиции (FOR UPDATE).

from __future__ import annotations

import logging
import math
import os
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple

from fastapi import HTTPException
from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from giftlist.models.claim import Claim
from giftlist.models.item import Item, ItemStatus
from giftlist.models.user import User
from giftlist.services.notifications import (
    CLAIM_RELEASED,
    ITEM_CLAIMED,
    ITEM_PURCHASED,
    ITEM_UNPURCHASED,
    REMINDER,
    enqueue_notification,
    notify_users,
)
from giftlist.services.visibility import is_item_recipient, item_recipient_ids
from giftlist.utils.errors import err
from giftlist.utils.ids import utcnow

log = logging.getLogger(__name__)

CLAIM_EXPIRATION_DAYS = int(os.getenv("CLAIM_EXPIRATION_DAYS", "30"))
CLAIM_REMINDER_DAYS = int(os.getenv("CLAIM_REMINDER_DAYS", "3"))
# 1: купленные брони истекают как обычные; 0: отметка о покупке снимает срок
PURCHASED_CLAIMS_EXPIRE = os.getenv("PURCHASED_CLAIMS_EXPIRE", "0") == "1"
NOTIFY_ON_UNPURCHASE = os.getenv("NOTIFY_ON_UNPURCHASE", "0") == "1"


# =========================
# СРОК ДЕЙСТВИЯ
# =========================

def is_claim_expired(claim: Claim, now: Optional[datetime] = None) -> bool:
    if claim.expires_at is None:
        return False
    if claim.purchased_at is not None and not PURCHASED_CLAIMS_EXPIRE:
        return False
    return claim.expires_at < (now or utcnow())


def active_claim_clause(now: datetime):
    """SQL-условие «бронь действует»: зеркало is_claim_expired."""
    conditions = [Claim.expires_at.is_(None), Claim.expires_at >= now]
    if not PURCHASED_CLAIMS_EXPIRE:
        conditions.append(Claim.purchased_at.is_not(None))
    return or_(*conditions)


def expired_claim_clause(now: datetime):
    conditions = [Claim.expires_at.is_not(None), Claim.expires_at < now]
    if not PURCHASED_CLAIMS_EXPIRE:
        conditions.append(Claim.purchased_at.is_(None))
    return and_(*conditions)


def get_active_claims(db: Session, item_id: str, now: Optional[datetime] = None) -> List[Claim]:
    now = now or utcnow()
    stmt = (
        select(Claim)
        .where(Claim.item_id == item_id, active_claim_clause(now))
        .order_by(Claim.created_at.asc(), Claim.id.asc())
    )
    return list(db.scalars(stmt).all())


# =========================
# СВОБОДНАЯ СУММА
# =========================

def compute_claimable_amount(price: Optional[int], claims: Iterable[Claim]) -> Optional[int]:
    """
    None: у позиции нет цены, возможна только полная бронь;
    0   : есть полная бронь или сумма частичных исчерпала цену;
    иначе price - Σ частичных.
    """
    if price is None:
        return None
    partial_sum = 0
    for c in claims:
        if c.amount is None:
            return 0
        partial_sum += c.amount
    return max(0, price - partial_sum)


def split_claims(claims: Iterable[Claim]) -> Tuple[Optional[Claim], List[Claim]]:
    full = None
    partials: List[Claim] = []
    for c in claims:
        if c.amount is None:
            full = c
        else:
            partials.append(c)
    return full, partials


# =========================
# ИСТЕЧЕНИЕ
# =========================

def release_expired_claim(db: Session, claim: Claim, item: Item) -> None:
    """
    Удаляет просроченную бронь и ставит уведомления:
      • автору: «бронь истекла»;
      • остальным получателям (никогда не владельцу): «позиция снова доступна».
    Не делает commit.
    """
    enqueue_notification(
        db,
        user_id=claim.user_id,
        type=CLAIM_RELEASED,
        title="Claim Expired",
        body=f'Your claim on "{item.name}" has expired and been released',
        data={"item_id": item.id, "item_name": item.name, "reason": "expired"},
        idempotency_key=f"claim_expired:{claim.id}:{claim.user_id}",
    )
    notify_users(
        db,
        item_recipient_ids(db, item),
        exclude=(item.owner_id, claim.user_id),
        type=CLAIM_RELEASED,
        title="Item Available",
        body=f'"{item.name}" is available again',
        data={"item_id": item.id, "item_name": item.name},
        key_prefix=f"claim_available:{claim.id}",
    )
    db.delete(claim)


def release_expired_claims_for_item(db: Session, item: Item, now: Optional[datetime] = None) -> int:
    """Ленивое снятие просроченных броней перед записью на позицию."""
    now = now or utcnow()
    expired = db.scalars(select(Claim).where(Claim.item_id == item.id, expired_claim_clause(now))).all()
    for claim in expired:
        release_expired_claim(db, claim, item)
    if expired:
        db.flush()
        log.info("released %s expired claim(s) on item %s", len(expired), item.id)
    return len(expired)


def release_expired_claims(db: Session, now: Optional[datetime] = None) -> List[str]:
    """
    Снимает все просроченные брони. Возвращает их id. Не делает commit.
    """
    now = now or utcnow()
    rows = db.execute(
        select(Claim, Item)
        .join(Item, Item.id == Claim.item_id)
        .where(expired_claim_clause(now))
        .order_by(Claim.expires_at.asc(), Claim.id.asc())
    ).all()

    released: List[str] = []
    for claim, item in rows:
        released.append(claim.id)
        release_expired_claim(db, claim, item)
    db.flush()
    return released


def send_expiring_reminders(db: Session, now: Optional[datetime] = None) -> List[str]:
    """
    Одно напоминание на бронь, срок которой истекает в ближайшие CLAIM_REMINDER_DAYS дней.
    Факт отправки фиксируется в claims.reminded_at. Не делает commit.
    """
    now = now or utcnow()
    window_end = now + timedelta(days=CLAIM_REMINDER_DAYS)
    conditions = [
        Claim.expires_at.is_not(None),
        Claim.expires_at >= now,
        Claim.expires_at <= window_end,
        Claim.reminded_at.is_(None),
    ]
    if not PURCHASED_CLAIMS_EXPIRE:
        conditions.append(Claim.purchased_at.is_(None))

    rows = db.execute(select(Claim, Item).join(Item, Item.id == Claim.item_id).where(*conditions)).all()

    reminded: List[str] = []
    for claim, item in rows:
        days_left = max(1, math.ceil((claim.expires_at - now).total_seconds() / 86400))
        body = (
            f'Your claim on "{item.name}" expires tomorrow'
            if days_left == 1
            else f'Your claim on "{item.name}" expires in {days_left} days'
        )
        enqueue_notification(
            db,
            user_id=claim.user_id,
            type=REMINDER,
            title="Claim Expiring Soon",
            body=body,
            data={
                "item_id": item.id,
                "item_name": item.name,
                "expires_at": claim.expires_at.isoformat(),
                "days_left": days_left,
            },
            idempotency_key=f"claim_reminder:{claim.id}",
        )
        claim.reminded_at = now
        reminded.append(claim.id)
    db.flush()
    return reminded


# =========================
# СОЗДАНИЕ / СНЯТИЕ
# =========================

def _lock_item_or_404(db: Session, item_id: str) -> Item:
    item = db.scalar(select(Item).where(Item.id == item_id).with_for_update())
    if not item:
        raise HTTPException(status_code=404, detail=err("item_not_found", "Item not found"))
    return item


def create_claim(db: Session, *, item_id: str, user: User, amount: Optional[int]) -> Claim:
    """
    Создаёт полную (amount=None) или частичную бронь.
    Проверки строго по порядку: позиция есть -> не своя -> вызывающий получатель ->
    позиция активна -> правила полной/частичной брони.
    Побочный эффект: уведомления остальным получателям через outbox.
    """
    item = _lock_item_or_404(db, item_id)

    if item.owner_id == user.id:
        raise HTTPException(status_code=403, detail=err("cannot_claim_own_item", "Cannot claim your own item"))

    if not is_item_recipient(db, item, user.id):
        raise HTTPException(
            status_code=403,
            detail=err("not_a_recipient", "You must be a recipient of this item to claim it"),
        )

    if item.status != ItemStatus.active:
        raise HTTPException(status_code=409, detail=err("item_not_active", "Item is not available for claiming"))

    if amount is not None and amount <= 0:
        raise HTTPException(status_code=400, detail=err("validation_error", "Amount must be a positive integer"))

    now = utcnow()
    release_expired_claims_for_item(db, item, now)
    full, partials = split_claims(get_active_claims(db, item.id, now))

    if amount is None:
        if full is not None:
            raise HTTPException(status_code=409, detail=err("already_claimed", "This item has already been claimed"))
        if partials:
            remaining = compute_claimable_amount(item.price, partials)
            if remaining == 0:
                raise HTTPException(
                    status_code=409,
                    detail=err("fully_claimed", "This item is fully claimed", remaining_amount=0),
                )
            raise HTTPException(
                status_code=409,
                detail=err(
                    "partially_claimed",
                    "Item already has partial claims, only a partial claim is possible",
                    remaining_amount=remaining,
                ),
            )
    else:
        if item.price is None:
            raise HTTPException(
                status_code=400,
                detail=err("price_required", "Partial claims require the item to have a price"),
            )
        if full is not None:
            raise HTTPException(status_code=409, detail=err("already_claimed", "This item has already been claimed"))
        remaining = compute_claimable_amount(item.price, partials)
        if remaining == 0:
            raise HTTPException(
                status_code=409,
                detail=err("fully_claimed", "This item is fully claimed", remaining_amount=0),
            )
        if amount > remaining:
            raise HTTPException(
                status_code=409,
                detail=err(
                    "amount_exceeds_remaining",
                    "Requested amount exceeds the remaining amount",
                    remaining_amount=remaining,
                ),
            )

    claim = Claim(
        item_id=item.id,
        user_id=user.id,
        amount=amount,
        created_at=now,
        expires_at=now + timedelta(days=CLAIM_EXPIRATION_DAYS),
    )
    db.add(claim)
    try:
        db.flush()
    except IntegrityError:
        # конкурентная полная бронь успела раньше
        db.rollback()
        raise HTTPException(status_code=409, detail=err("already_claimed", "This item has already been claimed"))

    claimer_name = user.display_name
    notify_users(
        db,
        item_recipient_ids(db, item),
        exclude=(item.owner_id, user.id),
        type=ITEM_CLAIMED,
        title="Item Claimed",
        body=(
            f'{claimer_name} claimed "{item.name}"'
            if amount is None
            else f'{claimer_name} claimed part of "{item.name}"'
        ),
        data={"item_id": item.id, "item_name": item.name, "claim_id": claim.id, "amount": amount},
        key_prefix=f"claimed:{claim.id}",
    )

    db.commit()
    db.refresh(claim)
    log.info("claim %s created on item %s by user %s (amount=%s)", claim.id, item.id, user.id, amount)
    return claim


def get_own_claim_or_404(db: Session, claim_id: str, user_id: str) -> Claim:
    """
    Только собственная, не просроченная бронь. Чужая неотличима от несуществующей.
    """
    claim = db.get(Claim, claim_id)
    if not claim or claim.user_id != user_id or is_claim_expired(claim):
        raise HTTPException(status_code=404, detail=err("claim_not_found", "Claim not found"))
    return claim


def release_claim(db: Session, *, claim_id: str, user: User) -> None:
    """Добровольное снятие своей брони. Освобождённая сумма доступна сразу."""
    claim = get_own_claim_or_404(db, claim_id, user.id)
    db.delete(claim)
    db.commit()
    log.info("claim %s released by user %s", claim_id, user.id)


def mark_purchased(db: Session, *, claim_id: str, user: User) -> Claim:
    claim = get_own_claim_or_404(db, claim_id, user.id)
    if claim.purchased_at is not None:
        raise HTTPException(
            status_code=409,
            detail=err("already_purchased", "Claim already marked as purchased"),
        )

    claim.purchased_at = utcnow()
    item = db.get(Item, claim.item_id)
    notify_users(
        db,
        item_recipient_ids(db, item),
        exclude=(item.owner_id, user.id),
        type=ITEM_PURCHASED,
        title="Item Purchased",
        body=f'"{item.name}" has been purchased',
        data={"item_id": item.id, "item_name": item.name},
    )
    db.commit()
    db.refresh(claim)
    return claim


def unmark_purchased(db: Session, *, claim_id: str, user: User) -> Claim:
    claim = get_own_claim_or_404(db, claim_id, user.id)
    if claim.purchased_at is None:
        raise HTTPException(
            status_code=409,
            detail=err("not_purchased", "Claim is not marked as purchased"),
        )

    claim.purchased_at = None
    if NOTIFY_ON_UNPURCHASE:
        item = db.get(Item, claim.item_id)
        notify_users(
            db,
            item_recipient_ids(db, item),
            exclude=(item.owner_id, user.id),
            type=ITEM_UNPURCHASED,
            title="Purchase Cancelled",
            body=f'"{item.name}" is no longer marked as purchased',
            data={"item_id": item.id, "item_name": item.name},
        )
    db.commit()
    db.refresh(claim)
    return claim


# =========================
# ЧТЕНИЕ
# =========================

def list_my_claims(db: Session, user_id: str) -> List[Tuple[Claim, Item, User]]:
    """
    Действующие брони пользователя с позицией и её владельцем, новые первыми.
    """
    now = utcnow()
    rows = db.execute(
        select(Claim, Item, User)
        .join(Item, Item.id == Claim.item_id)
        .join(User, User.id == Item.owner_id)
        .where(Claim.user_id == user_id, Item.owner_id != user_id, active_claim_clause(now))
        .order_by(Claim.created_at.desc(), Claim.id.asc())
    ).all()
    return [(c, i, u) for (c, i, u) in rows]
