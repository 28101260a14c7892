# giftlist/services/shared_items.py
# Лента «мне расшарили»: позиции, видимые пользователю через его группы.
# Свои позиции не попадают сюда никогда, поэтому брони в ленте всегда
# отдаются получателю, а не владельцу; дополнительно фильтруются can_view_claim.

from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from giftlist.models.claim import Claim
from giftlist.models.group import Group
from giftlist.models.group_member import GroupMember
from giftlist.models.item import Item, ItemStatus
from giftlist.models.item_recipient import ItemRecipient
from giftlist.models.user import User
from giftlist.services.claims import active_claim_clause, compute_claimable_amount
from giftlist.services.visibility import can_view_claim
from giftlist.utils.ids import utcnow


def _user_summary(u: User) -> Dict[str, Any]:
    return {"id": u.id, "name": u.name, "email": u.email, "avatar_url": u.avatar_url}


def list_shared_items(
    db: Session,
    viewer: User,
    *,
    group_id: Optional[str] = None,
    status: Optional[ItemStatus] = None,
) -> List[Dict[str, Any]]:
    """
    Дедупликация по позиции: одна запись на позицию, все группы: в shared_via.
    """
    stmt = (
        select(Item, Group, User)
        .join(ItemRecipient, ItemRecipient.item_id == Item.id)
        .join(GroupMember, GroupMember.group_id == ItemRecipient.group_id)
        .join(Group, Group.id == ItemRecipient.group_id)
        .join(User, User.id == Item.owner_id)
        .where(GroupMember.user_id == viewer.id, Item.owner_id != viewer.id)
        .order_by(Item.created_at.desc(), Item.id.asc(), Group.name.asc())
    )
    if group_id is not None:
        stmt = stmt.where(ItemRecipient.group_id == group_id)
    if status is not None:
        stmt = stmt.where(Item.status == status)

    by_item: Dict[str, Dict[str, Any]] = {}
    items: Dict[str, Item] = {}
    for item, group, owner in db.execute(stmt).all():
        entry = by_item.get(item.id)
        if entry is None:
            items[item.id] = item
            entry = {
                "id": item.id,
                "name": item.name,
                "url": item.url,
                "price": item.price,
                "notes": item.notes,
                "image_url": item.image_url,
                "priority": item.priority,
                "status": item.status.value,
                "created_at": item.created_at,
                "owner": _user_summary(owner),
                "shared_via": [],
                "claims": [],
                "claimable_amount": None,
            }
            by_item[item.id] = entry
        entry["shared_via"].append({"group_id": group.id, "group_name": group.name})

    if not by_item:
        return []

    claim_rows = db.execute(
        select(Claim, User)
        .join(User, User.id == Claim.user_id)
        .where(Claim.item_id.in_(list(by_item.keys())), active_claim_clause(utcnow()))
        .order_by(Claim.created_at.asc(), Claim.id.asc())
    ).all()

    claims_by_item: Dict[str, List[Claim]] = {}
    for claim, claimer in claim_rows:
        item = items[claim.item_id]
        claims_by_item.setdefault(item.id, []).append(claim)
        if not can_view_claim(db, claim, viewer.id, item=item):
            continue
        by_item[item.id]["claims"].append(
            {
                "id": claim.id,
                "user": _user_summary(claimer),
                "amount": claim.amount,
                "is_purchased": claim.purchased_at is not None,
                "is_mine": claim.user_id == viewer.id,
                "expires_at": claim.expires_at,
                "created_at": claim.created_at,
            }
        )

    for item_id, entry in by_item.items():
        entry["claimable_amount"] = compute_claimable_amount(items[item_id].price, claims_by_item.get(item_id, []))

    return list(by_item.values())
