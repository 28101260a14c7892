# giftlist/utils/groups.py
# ОБЩИЕ ХЕЛПЕРЫ ДЛЯ РАБОТЫ С ГРУППАМИ.
# Группа, в которой пользователь не состоит, для него не существует: 404, а не 403.

from __future__ import annotations

from typing import List, Optional

from fastapi import HTTPException
from starlette import status
from sqlalchemy import select
from sqlalchemy.orm import Session

from giftlist.models.group import Group
from giftlist.models.group_member import GroupMember, MemberRole
from giftlist.utils.errors import err

# =========================
# БАЗОВЫЕ ГАРДЫ / ЗАГРУЗКИ
# =========================


def get_group_or_404(db: Session, group_id: str) -> Group:
    group = db.get(Group, group_id)
    if not group:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=err("group_not_found", "Group not found"))
    return group


def get_membership(db: Session, group_id: str, user_id: str) -> Optional[GroupMember]:
    return db.scalar(
        select(GroupMember).where(
            GroupMember.group_id == group_id,
            GroupMember.user_id == user_id,
        )
    )


def require_membership(db: Session, group_id: str, user_id: str) -> GroupMember:
    """
    Возвращает членство вызывающего. Не участник -> 404 (не раскрываем существование группы).
    """
    get_group_or_404(db, group_id)
    membership = get_membership(db, group_id, user_id)
    if not membership:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=err("group_not_found", "Group not found"))
    return membership


def require_owner(db: Session, group_id: str, user_id: str) -> Group:
    membership = require_membership(db, group_id, user_id)
    if membership.role != MemberRole.owner:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=err("owner_required", "Only owner can perform this action"),
        )
    return membership.group


def require_owner_or_admin(db: Session, group_id: str, user_id: str) -> GroupMember:
    membership = require_membership(db, group_id, user_id)
    if membership.role not in (MemberRole.owner, MemberRole.admin):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=err("admin_required", "Only owner or admin can perform this action"),
        )
    return membership


# =========================
# ЧЛЕНЫ ГРУППЫ
# =========================

def get_group_member_ids(db: Session, group_id: str) -> List[str]:
    rows = db.execute(select(GroupMember.user_id).where(GroupMember.group_id == group_id)).all()
    return [uid for (uid,) in rows]


def get_user_group_ids(db: Session, user_id: str) -> List[str]:
    rows = db.execute(select(GroupMember.group_id).where(GroupMember.user_id == user_id)).all()
    return [gid for (gid,) in rows]
