# giftlist/services/cascades.py
# -----------------------------------------------------------------------------
# КООРДИНАТОР КАСКАДОВ
# -----------------------------------------------------------------------------
# Реакция на структурные изменения: удаление группы, удаление участника,
# добавление участника (владелец вступил в группу, где расшарены его позиции),
# снятие расшаривания, удаление позиции, удаление пользователя.
#
# Общий порядок для каждого события:
#   1) снимок затронутых броней (ДО структурного удаления: нужен для уведомлений);
#   2) удаление этих броней;
#   3) постановка уведомлений в outbox;
#   4) само структурное удаление.
# Функции не делают commit: единицу работы закрывает вызывающий сервис.

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Collection, Dict, Iterable, List, Optional, Sequence, Set

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from giftlist.models.claim import Claim
from giftlist.models.group import Group
from giftlist.models.group_member import GroupMember
from giftlist.models.invitation import Invitation
from giftlist.models.item import Item
from giftlist.models.item_recipient import ItemRecipient
from giftlist.models.notification import Notification
from giftlist.models.notification_outbox import NotificationOutbox
from giftlist.models.user import User
from giftlist.services.notifications import (
    CLAIM_RELEASED,
    ITEM_DELETED,
    MEMBER_LEFT,
    enqueue_notification,
    notify_users,
)
from giftlist.utils.groups import get_group_member_ids

log = logging.getLogger(__name__)

# причины снятия брони (data.reason в уведомлении)
REASON_GROUP_DELETED = "group_deleted"
REASON_OWNER_JOINED = "owner_joined_group"
REASON_ITEM_UNSHARED = "item_unshared"
REASON_LEFT = "left"
REASON_REMOVED = "removed"


@dataclass(frozen=True)
class ReleasedClaim:
    claim_id: str
    item_id: str
    item_name: str
    user_id: str


def _reason_text(reason: str, group_names: Sequence[str]) -> str:
    groups = ", ".join(f'"{name}"' for name in group_names)
    return {
        REASON_GROUP_DELETED: f"The group {groups} was deleted",
        REASON_OWNER_JOINED: f"The item owner joined {groups}",
        REASON_ITEM_UNSHARED: f"The item was unshared from {groups}",
        REASON_LEFT: f"You left {groups}",
        REASON_REMOVED: f"You were removed from {groups}",
    }[reason]


# =========================
# ОБЩИЙ ПОДАЛГОРИТМ
# =========================

def _tagged_item_ids(db: Session, group_id: str) -> List[str]:
    rows = db.execute(select(ItemRecipient.item_id).where(ItemRecipient.group_id == group_id)).all()
    return [iid for (iid,) in rows]


def _access_map(db: Session, item_ids: Collection[str], *, excluding_group_ids: Collection[str]) -> Dict[str, Set[str]]:
    """
    {item_id: {user_id, ...}}: кто сохраняет доступ к позиции через ДРУГИЕ группы.
    """
    if not item_ids:
        return {}
    stmt = (
        select(ItemRecipient.item_id, GroupMember.user_id)
        .join(GroupMember, GroupMember.group_id == ItemRecipient.group_id)
        .where(ItemRecipient.item_id.in_(list(item_ids)))
    )
    if excluding_group_ids:
        stmt = stmt.where(ItemRecipient.group_id.not_in(list(excluding_group_ids)))
    out: Dict[str, Set[str]] = {}
    for item_id, user_id in db.execute(stmt).all():
        out.setdefault(item_id, set()).add(user_id)
    return out


def _snapshot_claims(
    db: Session,
    item_ids: Collection[str],
    *,
    claimer_ids: Optional[Collection[str]] = None,
) -> List[ReleasedClaim]:
    if not item_ids:
        return []
    stmt = (
        select(Claim.id, Claim.item_id, Item.name, Claim.user_id)
        .join(Item, Item.id == Claim.item_id)
        .where(Claim.item_id.in_(list(item_ids)))
        .order_by(Claim.item_id.asc(), Claim.created_at.asc(), Claim.id.asc())
    )
    if claimer_ids is not None:
        if not claimer_ids:
            return []
        stmt = stmt.where(Claim.user_id.in_(list(claimer_ids)))
    return [ReleasedClaim(cid, iid, name, uid) for (cid, iid, name, uid) in db.execute(stmt).all()]


def _losing_access(
    db: Session,
    snapshot: List[ReleasedClaim],
    *,
    excluding_group_ids: Collection[str],
) -> List[ReleasedClaim]:
    """
    Оставляет только брони тех, кто теряет ВСЕ пути доступа к позиции.
    """
    still = _access_map(db, {r.item_id for r in snapshot}, excluding_group_ids=excluding_group_ids)
    return [r for r in snapshot if r.user_id not in still.get(r.item_id, set())]


def _delete_claims(db: Session, released: Iterable[ReleasedClaim]) -> None:
    ids = [r.claim_id for r in released]
    if ids:
        db.execute(delete(Claim).where(Claim.id.in_(ids)))


def _notify_released(
    db: Session,
    released: Iterable[ReleasedClaim],
    *,
    reason: str,
    group: Optional[Group] = None,
    groups: Sequence[Group] = (),
    skip_user_ids: Collection[str] = (),
) -> int:
    """
    Одно уведомление на пару (бронь, автор). Идемпотентно по claim_id.
    groups: если причина касается сразу нескольких групп (снятие расшаривания).
    """
    named = sorted([group] if group is not None else groups, key=lambda g: (g.name, g.id))
    group_name = ", ".join(g.name for g in named)
    count = 0
    for r in released:
        if r.user_id in skip_user_ids:
            continue
        enqueue_notification(
            db,
            user_id=r.user_id,
            type=CLAIM_RELEASED,
            title="Claim Released",
            body=f'Your claim on "{r.item_name}" has been released. {_reason_text(reason, [g.name for g in named])}.',
            data={
                "item_id": r.item_id,
                "item_name": r.item_name,
                "group_id": named[0].id if len(named) == 1 else None,
                "group_ids": [g.id for g in named],
                "group_name": group_name,
                "reason": reason,
            },
            idempotency_key=f"claim_released:{r.claim_id}:{r.user_id}",
        )
        count += 1
    return count


# =========================
# СОБЫТИЯ
# =========================

def on_group_deleted(db: Session, group: Group, *, actor_id: Optional[str]) -> List[ReleasedClaim]:
    """
    Группа удаляется: снимаются брони участников группы на позициях,
    доступных им только через эту группу. Автор удаления не уведомляется.
    Затем удаляются теги, приглашения, членства и сама группа.
    """
    item_ids = _tagged_item_ids(db, group.id)
    member_ids = get_group_member_ids(db, group.id)

    snapshot = _snapshot_claims(db, item_ids, claimer_ids=member_ids)
    released = _losing_access(db, snapshot, excluding_group_ids=[group.id])

    _delete_claims(db, released)
    notified = _notify_released(
        db,
        released,
        reason=REASON_GROUP_DELETED,
        group=group,
        skip_user_ids=[actor_id] if actor_id else [],
    )

    db.execute(delete(ItemRecipient).where(ItemRecipient.group_id == group.id))
    db.execute(delete(Invitation).where(Invitation.group_id == group.id))
    db.execute(delete(GroupMember).where(GroupMember.group_id == group.id))
    db.delete(group)
    db.flush()

    log.info(
        "group %s deleted: %s tagged item(s), %s claim(s) released, %s notification(s)",
        group.id, len(item_ids), len(released), notified,
    )
    return released


def on_member_removed(
    db: Session,
    group: Group,
    member: GroupMember,
    *,
    actor_id: Optional[str],
    notify_removed_user: bool = True,
) -> List[ReleasedClaim]:
    """
    Участник удалён (или вышел сам): снимаются его брони на позициях группы,
    если других путей доступа к позиции у него нет. Ему: «бронь снята»,
    оставшимся участникам (кроме автора действия): member_left.
    """
    user_id = member.user_id
    reason = REASON_LEFT if actor_id == user_id else REASON_REMOVED

    item_ids = _tagged_item_ids(db, group.id)
    snapshot = _snapshot_claims(db, item_ids, claimer_ids=[user_id])
    released = _losing_access(db, snapshot, excluding_group_ids=[group.id])

    _delete_claims(db, released)
    if notify_removed_user:
        _notify_released(db, released, reason=reason, group=group)

    user = db.get(User, user_id)
    name = user.display_name if user else "A member"
    db.delete(member)
    db.flush()

    remaining = get_group_member_ids(db, group.id)
    notify_users(
        db,
        remaining,
        exclude=(actor_id, user_id),
        type=MEMBER_LEFT,
        title="Member Left Group",
        body=f'{name} left "{group.name}"' if reason == REASON_LEFT else f'{name} was removed from "{group.name}"',
        data={"group_id": group.id, "group_name": group.name, "member_name": name, "reason": reason},
    )

    log.info("member %s removed from group %s (%s): %s claim(s) released", user_id, group.id, reason, len(released))
    return released


def on_member_added(db: Session, group: Group, user_id: str) -> List[ReleasedClaim]:
    """
    Новый участник владеет позициями, уже расшаренными в эту группу:
    такие позиции немедленно снимаются с группы, а ВСЕ брони на них удаляются,
    чтобы владелец не увидел их через новое членство.
    """
    own_item_ids = list(
        db.scalars(
            select(ItemRecipient.item_id)
            .join(Item, Item.id == ItemRecipient.item_id)
            .where(ItemRecipient.group_id == group.id, Item.owner_id == user_id)
        ).all()
    )
    if not own_item_ids:
        return []

    released = _snapshot_claims(db, own_item_ids)
    _delete_claims(db, released)
    _notify_released(db, released, reason=REASON_OWNER_JOINED, group=group, skip_user_ids=[user_id])

    db.execute(
        delete(ItemRecipient).where(
            ItemRecipient.group_id == group.id,
            ItemRecipient.item_id.in_(own_item_ids),
        )
    )
    db.flush()

    log.info(
        "owner %s joined group %s: %s item(s) unshared, %s claim(s) released",
        user_id, group.id, len(own_item_ids), len(released),
    )
    return released


def on_item_unshared(
    db: Session,
    item: Item,
    group_ids: Collection[str],
    *,
    actor_id: Optional[str],
) -> List[ReleasedClaim]:
    """
    Владелец снимает позицию с групп: брони участников этих групп снимаются,
    если позиция не остаётся им доступна через другую группу.
    """
    group_ids = list(group_ids)
    if not group_ids:
        return []

    members = db.execute(
        select(GroupMember.user_id, GroupMember.group_id).where(GroupMember.group_id.in_(group_ids))
    ).all()
    claimer_ids = {uid for (uid, _) in members}
    groups_by_user: Dict[str, List[str]] = {}
    for uid, gid in members:
        groups_by_user.setdefault(uid, []).append(gid)

    snapshot = _snapshot_claims(db, [item.id], claimer_ids=claimer_ids)
    released = _losing_access(db, snapshot, excluding_group_ids=group_ids)

    _delete_claims(db, released)
    groups = {g.id: g for g in db.scalars(select(Group).where(Group.id.in_(group_ids))).all()}
    for r in released:
        if r.user_id == actor_id:
            continue
        user_groups = [groups[gid] for gid in groups_by_user.get(r.user_id, []) if gid in groups]
        _notify_released(db, [r], reason=REASON_ITEM_UNSHARED, groups=user_groups)

    db.execute(
        delete(ItemRecipient).where(
            ItemRecipient.item_id == item.id,
            ItemRecipient.group_id.in_(group_ids),
        )
    )
    db.flush()

    log.info("item %s unshared from %s group(s): %s claim(s) released", item.id, len(group_ids), len(released))
    return released


def on_item_deleted(db: Session, item: Item) -> List[ReleasedClaim]:
    """
    Позиция удаляется: авторам броней: item_deleted (владельцу никогда),
    затем удаляются брони, теги и сама позиция.
    """
    released = _snapshot_claims(db, [item.id])
    for r in released:
        if r.user_id == item.owner_id:
            continue
        enqueue_notification(
            db,
            user_id=r.user_id,
            type=ITEM_DELETED,
            title="Item Deleted",
            body=f'"{item.name}" you claimed was removed from the wishlist',
            data={"item_id": item.id, "item_name": item.name},
            idempotency_key=f"item_deleted:{r.claim_id}:{r.user_id}",
        )

    _delete_claims(db, released)
    db.execute(delete(ItemRecipient).where(ItemRecipient.item_id == item.id))
    db.delete(item)
    db.flush()

    log.info("item %s deleted: %s claim(s) released", item.id, len(released))
    return released


def on_user_deleted(db: Session, user: User) -> dict:
    """
    Пользователь удалён у провайдера идентификации:
      • его группы удаляются через каскад удаления группы;
      • его позиции: через каскад удаления позиции;
      • из остальных групп он выходит (без уведомлений ему самому);
      • его брони, уведомления, outbox и отправленные приглашения удаляются.
    """
    owned_groups = list(db.scalars(select(Group).where(Group.owner_id == user.id)).all())
    for g in owned_groups:
        on_group_deleted(db, g, actor_id=user.id)

    owned_items = list(db.scalars(select(Item).where(Item.owner_id == user.id)).all())
    for it in owned_items:
        on_item_deleted(db, it)

    memberships = list(db.scalars(select(GroupMember).where(GroupMember.user_id == user.id)).all())
    for m in memberships:
        on_member_removed(db, m.group, m, actor_id=user.id, notify_removed_user=False)

    db.execute(delete(Claim).where(Claim.user_id == user.id))
    db.execute(delete(Notification).where(Notification.user_id == user.id))
    db.execute(delete(NotificationOutbox).where(NotificationOutbox.user_id == user.id))
    db.execute(delete(Invitation).where(Invitation.inviter_id == user.id))
    db.delete(user)
    db.flush()

    summary = {
        "groups_deleted": len(owned_groups),
        "items_deleted": len(owned_items),
        "memberships_removed": len(memberships),
    }
    log.info("user %s deleted: %s", user.id, summary)
    return summary
