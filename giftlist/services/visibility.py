# giftlist/services/visibility.py
# Кто видит позицию и брони на ней.
# Правило «слепого пятна владельца»: владелец позиции никогда не видит брони
# на ней, ни через какой запрос и ни через какое членство.

from __future__ import annotations

from typing import Iterable, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.orm import Session

from giftlist.models.claim import Claim
from giftlist.models.group_member import GroupMember
from giftlist.models.item import Item
from giftlist.models.item_recipient import ItemRecipient


def item_group_ids(db: Session, item_id: str) -> List[str]:
    rows = db.execute(select(ItemRecipient.group_id).where(ItemRecipient.item_id == item_id)).all()
    return [gid for (gid,) in rows]


def item_recipient_ids(db: Session, item: Item, *, exclude: Iterable[Optional[str]] = ()) -> Set[str]:
    """
    Все участники всех групп, в которые расшарена позиция. Владелец исключается всегда.
    """
    rows = db.execute(
        select(GroupMember.user_id)
        .join(ItemRecipient, ItemRecipient.group_id == GroupMember.group_id)
        .where(ItemRecipient.item_id == item.id)
        .distinct()
    ).all()
    skip = {uid for uid in exclude if uid}
    skip.add(item.owner_id)
    return {uid for (uid,) in rows} - skip


def is_item_recipient(db: Session, item: Item, user_id: str) -> bool:
    if user_id == item.owner_id:
        return False
    found = db.scalar(
        select(GroupMember.id)
        .join(ItemRecipient, ItemRecipient.group_id == GroupMember.group_id)
        .where(ItemRecipient.item_id == item.id, GroupMember.user_id == user_id)
        .limit(1)
    )
    return found is not None


def can_view_claim(db: Session, claim: Claim, viewer_id: str, *, item: Optional[Item] = None) -> bool:
    """
    Единый предикат видимости брони:
      • владелец позиции: никогда;
      • автор брони: всегда (если он не владелец);
      • остальные: только получатели позиции.
    """
    if item is None:
        item = db.get(Item, claim.item_id)
    if item is None or viewer_id == item.owner_id:
        return False
    if claim.user_id == viewer_id:
        return True
    return is_item_recipient(db, item, viewer_id)


def visible_claims(db: Session, item: Item, viewer_id: str, claims: Iterable[Claim]) -> List[Claim]:
    """
    Фильтрует брони позиции для конкретного зрителя.
    Владелец получает пустой список; проверку получателя делаем один раз на позицию.
    """
    if viewer_id == item.owner_id:
        return []
    recipient = is_item_recipient(db, item, viewer_id)
    return [c for c in claims if c.item_id == item.id and (recipient or c.user_id == viewer_id)]
