# giftlist/services/items.py
# Хранилище позиций вишлиста + жизненный цикл active / received / archived.
# Владелец работает только со своими позициями; брони ему не отдаются никогда.

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from giftlist.models.item import Item, ItemStatus
from giftlist.models.user import User
from giftlist.services.cascades import on_item_deleted
from giftlist.services.claims import get_active_claims, release_expired_claims_for_item, split_claims
from giftlist.services.notifications import ITEM_RECEIVED, enqueue_notification
from giftlist.utils.errors import err

log = logging.getLogger(__name__)

_EDITABLE_FIELDS = ("name", "url", "price", "notes", "image_url", "priority")


def get_owned_item_or_404(db: Session, item_id: str, user_id: str) -> Item:
    item = db.get(Item, item_id)
    if not item:
        raise HTTPException(status_code=404, detail=err("item_not_found", "Item not found"))
    if item.owner_id != user_id:
        raise HTTPException(status_code=403, detail=err("not_item_owner", "Only the item owner can do this"))
    return item


def list_items(db: Session, *, owner: User, status: Optional[ItemStatus] = None) -> List[Item]:
    stmt = select(Item).where(Item.owner_id == owner.id)
    if status is not None:
        stmt = stmt.where(Item.status == status)
    stmt = stmt.order_by(Item.created_at.desc(), Item.id.asc())
    return list(db.scalars(stmt).all())


def create_item(db: Session, *, owner: User, data: Dict[str, Any]) -> Item:
    item = Item(owner_id=owner.id, status=ItemStatus.active, **{k: data.get(k) for k in _EDITABLE_FIELDS})
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


def _check_price_covers_claims(db: Session, item: Item, new_price: Optional[int]) -> None:
    """
    Новая цена не может быть меньше суммы действующих частичных броней,
    а при наличии частичных броней цену нельзя убрать.
    """
    _, partials = split_claims(get_active_claims(db, item.id))
    if not partials:
        return
    claimed = sum(c.amount for c in partials)
    if new_price is None or new_price < claimed:
        raise HTTPException(
            status_code=409,
            detail=err(
                "price_below_claimed",
                "Price cannot be lower than the amount already claimed",
                claimed_amount=claimed,
            ),
        )


def update_item(db: Session, *, item_id: str, owner: User, changes: Dict[str, Any]) -> Item:
    """
    Частичное обновление: меняются только переданные поля (exclude_unset на стороне схемы).
    Смена цены проверяется против частичных броней под блокировкой строки позиции.
    """
    item = get_owned_item_or_404(db, item_id, owner.id)
    if "price" in changes:
        item = db.scalar(select(Item).where(Item.id == item.id).with_for_update())
        release_expired_claims_for_item(db, item)
        _check_price_covers_claims(db, item, changes["price"])
    for field, value in changes.items():
        if field in _EDITABLE_FIELDS:
            setattr(item, field, value)
    db.commit()
    db.refresh(item)
    return item


def delete_item(db: Session, *, item_id: str, owner: User) -> None:
    item = get_owned_item_or_404(db, item_id, owner.id)
    on_item_deleted(db, item)
    db.commit()


# =========================
# ЖИЗНЕННЫЙ ЦИКЛ
# =========================

def _invalid_transition(message: str) -> HTTPException:
    return HTTPException(status_code=400, detail=err("invalid_status", message))


def archive_item(db: Session, *, item_id: str, owner: User) -> Item:
    """
    active|received -> archived. Активную позицию с действующими бронями архивировать нельзя.
    """
    item = get_owned_item_or_404(db, item_id, owner.id)
    if item.status == ItemStatus.archived:
        raise _invalid_transition("Item already archived")
    if item.status == ItemStatus.active and get_active_claims(db, item.id):
        raise HTTPException(
            status_code=409,
            detail=err("item_has_claims", "Cannot archive item with active claims"),
        )
    item.status = ItemStatus.archived
    db.commit()
    db.refresh(item)
    return item


def receive_item(db: Session, *, item_id: str, owner: User) -> Item:
    """
    active -> received. Авторам действующих броней: «подарок получен».
    """
    item = get_owned_item_or_404(db, item_id, owner.id)
    if item.status != ItemStatus.active:
        raise _invalid_transition("Invalid state transition")

    item.status = ItemStatus.received
    claimer_ids = {c.user_id for c in get_active_claims(db, item.id)}
    for uid in sorted(claimer_ids - {item.owner_id}):
        enqueue_notification(
            db,
            user_id=uid,
            type=ITEM_RECEIVED,
            title="Gift Received!",
            body=f'The recipient confirmed they received "{item.name}"',
            data={"item_id": item.id, "item_name": item.name},
        )
    db.commit()
    db.refresh(item)
    log.info("item %s marked received, %s claimer(s) notified", item.id, len(claimer_ids))
    return item


def restore_item(db: Session, *, item_id: str, owner: User) -> Item:
    """received|archived -> active."""
    item = get_owned_item_or_404(db, item_id, owner.id)
    if item.status == ItemStatus.active:
        raise _invalid_transition("Item is already active")
    item.status = ItemStatus.active
    db.commit()
    db.refresh(item)
    return item
