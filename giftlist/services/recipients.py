# giftlist/services/recipients.py
# Расшаривание позиции в группы (item_recipients): граница видимости.

from __future__ import annotations

import logging
import os
from typing import Iterable, List, Tuple

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from giftlist.models.group import Group
from giftlist.models.item_recipient import ItemRecipient
from giftlist.models.user import User
from giftlist.services.cascades import ReleasedClaim, on_item_unshared
from giftlist.services.items import get_owned_item_or_404
from giftlist.utils.errors import err
from giftlist.utils.groups import get_user_group_ids

log = logging.getLogger(__name__)

# 0: строгий режим: нельзя расшарить в группу, где состоит сам владелец
ALLOW_SHARE_TO_OWN_GROUPS = os.getenv("ALLOW_SHARE_TO_OWN_GROUPS", "1") == "1"


def _dedupe(ids: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for i in ids:
        if i not in seen:
            seen.add(i)
            out.append(i)
    return out


def list_recipients(db: Session, *, item_id: str, user: User) -> List[Tuple[ItemRecipient, Group]]:
    item = get_owned_item_or_404(db, item_id, user.id)
    rows = db.execute(
        select(ItemRecipient, Group)
        .join(Group, Group.id == ItemRecipient.group_id)
        .where(ItemRecipient.item_id == item.id)
        .order_by(ItemRecipient.created_at.asc(), ItemRecipient.id.asc())
    ).all()
    return [(r, g) for (r, g) in rows]


def add_recipients(db: Session, *, item_id: str, group_ids: Iterable[str], user: User) -> List[Tuple[ItemRecipient, Group]]:
    """
    Владелец расшаривает позицию в группы. Возвращает только новые теги.
    Обычный режим: владелец обязан состоять в каждой группе (403 + unauthorized_groups).
    Строгий режим: наоборот, группы владельца запрещены (403 + blocked_groups).
    """
    item = get_owned_item_or_404(db, item_id, user.id)
    group_ids = _dedupe(group_ids)
    if not group_ids:
        return []

    groups = {g.id: g for g in db.scalars(select(Group).where(Group.id.in_(group_ids))).all()}
    own_group_ids = set(get_user_group_ids(db, user.id))

    if ALLOW_SHARE_TO_OWN_GROUPS:
        unauthorized = [gid for gid in group_ids if gid not in groups or gid not in own_group_ids]
        if unauthorized:
            raise HTTPException(
                status_code=403,
                detail=err(
                    "not_group_member",
                    "You can only share items with groups you are a member of",
                    unauthorized_groups=unauthorized,
                ),
            )
    else:
        missing = [gid for gid in group_ids if gid not in groups]
        if missing:
            raise HTTPException(
                status_code=404,
                detail=err("group_not_found", "Group not found", missing_groups=missing),
            )
        blocked = [gid for gid in group_ids if gid in own_group_ids]
        if blocked:
            raise HTTPException(
                status_code=403,
                detail=err(
                    "self_share_blocked",
                    "You cannot share your own item with a group you belong to",
                    blocked_groups=blocked,
                ),
            )

    existing = set(
        db.scalars(
            select(ItemRecipient.group_id).where(
                ItemRecipient.item_id == item.id,
                ItemRecipient.group_id.in_(group_ids),
            )
        ).all()
    )

    created: List[ItemRecipient] = []
    for gid in group_ids:
        if gid in existing:
            continue
        tag = ItemRecipient(item_id=item.id, group_id=gid)
        db.add(tag)
        created.append(tag)
    db.commit()
    for tag in created:
        db.refresh(tag)

    if created:
        log.info("item %s shared with %s new group(s)", item.id, len(created))
    return [(t, groups[t.group_id]) for t in created]


def remove_recipients(
    db: Session, *, item_id: str, group_ids: Iterable[str], user: User
) -> Tuple[List[str], List[ReleasedClaim]]:
    """
    Снимает теги; брони участников этих групп, потерявших доступ, снимаются каскадом.
    Несуществующие теги игнорируются. Возвращает (снятые group_id, снятые брони).
    """
    item = get_owned_item_or_404(db, item_id, user.id)
    group_ids = _dedupe(group_ids)

    tagged = list(
        db.scalars(
            select(ItemRecipient.group_id).where(
                ItemRecipient.item_id == item.id,
                ItemRecipient.group_id.in_(group_ids),
            )
        ).all()
    )
    if not tagged:
        return [], []

    released = on_item_unshared(db, item, tagged, actor_id=user.id)
    db.commit()
    return tagged, released
