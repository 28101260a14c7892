# giftlist/services/group_membership.py
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Tuple

from fastapi import HTTPException
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from giftlist.models.group import Group
from giftlist.models.group_member import GroupMember, MemberRole
from giftlist.models.user import User
from giftlist.services.cascades import ReleasedClaim, on_group_deleted, on_member_added, on_member_removed
from giftlist.services.notifications import MEMBER_JOINED, notify_users
from giftlist.utils.errors import err
from giftlist.utils.groups import get_group_member_ids, get_membership, require_membership, require_owner

log = logging.getLogger(__name__)


def is_member(db: Session, group_id: str, user_id: str) -> bool:
    return get_membership(db, group_id, user_id) is not None


# =========================
# ГРУППЫ
# =========================

def create_group(db: Session, *, owner: User, name: str, description: Optional[str]) -> Group:
    """
    Создаёт группу и сразу добавляет создателя участником с ролью owner.
    """
    group = Group(name=name, description=description, owner_id=owner.id)
    db.add(group)
    db.flush()
    db.add(GroupMember(group_id=group.id, user_id=owner.id, role=MemberRole.owner))
    db.commit()
    db.refresh(group)
    log.info("group %s created by user %s", group.id, owner.id)
    return group


def update_group(db: Session, *, group_id: str, actor: User, name: Optional[str], description: Optional[str]) -> Group:
    group = require_owner(db, group_id, actor.id)
    if name is not None:
        group.name = name
    if description is not None:
        group.description = description
    db.commit()
    db.refresh(group)
    return group


def delete_group(db: Session, *, group_id: str, actor: User) -> List[ReleasedClaim]:
    """
    Только владелец. Брони, ставшие нелегитимными, снимаются до удаления группы.
    """
    group = require_owner(db, group_id, actor.id)
    released = on_group_deleted(db, group, actor_id=actor.id)
    db.commit()
    return released


def list_user_groups(db: Session, user_id: str) -> List[Tuple[Group, MemberRole, int]]:
    """
    Группы пользователя: (группа, его роль, число участников).
    """
    counts = (
        select(GroupMember.group_id, func.count(GroupMember.id).label("member_count"))
        .group_by(GroupMember.group_id)
        .subquery()
    )
    rows = db.execute(
        select(Group, GroupMember.role, counts.c.member_count)
        .join(GroupMember, GroupMember.group_id == Group.id)
        .join(counts, counts.c.group_id == Group.id)
        .where(GroupMember.user_id == user_id)
        .order_by(Group.created_at.desc(), Group.id.asc())
    ).all()
    return [(g, role, int(cnt)) for (g, role, cnt) in rows]


def list_members(db: Session, group_id: str) -> List[Tuple[GroupMember, User]]:
    rows = db.execute(
        select(GroupMember, User)
        .join(User, User.id == GroupMember.user_id)
        .where(GroupMember.group_id == group_id)
        .order_by(GroupMember.joined_at.asc(), GroupMember.id.asc())
    ).all()
    return [(m, u) for (m, u) in rows]


# =========================
# УЧАСТНИКИ
# =========================

def add_member(
    db: Session,
    group: Group,
    user: User,
    *,
    role: MemberRole = MemberRole.member,
    notify_exclude: Iterable[Optional[str]] = (),
) -> GroupMember:
    """
    Добавляет участника (идемпотентно по UNIQUE (group_id, user_id)) и запускает
    каскад «владелец вступил в группу со своими позициями».
    Остальным участникам: member_joined (кроме нового и notify_exclude).
    Не делает commit.
    """
    existing = get_membership(db, group.id, user.id)
    if existing:
        return existing

    existing_ids = get_group_member_ids(db, group.id)
    member = GroupMember(group_id=group.id, user_id=user.id, role=role)
    db.add(member)
    try:
        db.flush()
    except IntegrityError:
        # гонка по UNIQUE (group_id, user_id): запись уже создана параллельно
        db.rollback()
        raise HTTPException(status_code=409, detail=err("already_member", "User is already a member of this group"))

    on_member_added(db, group, user.id)

    name = user.display_name
    notify_users(
        db,
        existing_ids,
        exclude=[user.id, *notify_exclude],
        type=MEMBER_JOINED,
        title="New Group Member",
        body=f'{name} joined "{group.name}"',
        data={"group_id": group.id, "group_name": group.name, "member_name": name},
        key_prefix=f"member_joined:{member.id}",
    )
    log.info("user %s joined group %s as %s", user.id, group.id, role.value)
    return member


def _can_remove(actor: GroupMember, target: GroupMember) -> bool:
    """
    Самоудаление: всегда; owner удаляет любого; admin: только простых участников.
    """
    if actor.user_id == target.user_id:
        return True
    if actor.role == MemberRole.owner:
        return True
    if actor.role == MemberRole.admin and target.role == MemberRole.member:
        return True
    return False


def remove_member(db: Session, *, group_id: str, target_user_id: str, actor: User) -> List[ReleasedClaim]:
    actor_membership = require_membership(db, group_id, actor.id)

    target = get_membership(db, group_id, target_user_id)
    if not target:
        raise HTTPException(status_code=404, detail=err("member_not_found", "Member not found"))

    if target.role == MemberRole.owner:
        raise HTTPException(
            status_code=403,
            detail=err("cannot_remove_owner", "The group owner cannot be removed"),
        )

    if not _can_remove(actor_membership, target):
        raise HTTPException(
            status_code=403,
            detail=err("insufficient_role", "You are not allowed to remove this member"),
        )

    group = actor_membership.group
    released = on_member_removed(db, group, target, actor_id=actor.id)
    db.commit()
    return released
