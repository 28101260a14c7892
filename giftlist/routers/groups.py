# giftlist/routers/groups.py
# -----------------------------------------------------------------------------
# РОУТЕР: Группы
# -----------------------------------------------------------------------------
# Группа, в которой пользователь не состоит, для него не существует (404).
# Изменение и удаление: только владелец; удаление запускает каскад снятия броней.

from __future__ import annotations

from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, Response
from starlette import status
from sqlalchemy.orm import Session

from giftlist.db import get_db
from giftlist.models.group import Group
from giftlist.models.user import User
from giftlist.schemas.group import (
    GroupCreate,
    GroupDetailOut,
    GroupListItemOut,
    GroupMemberOut,
    GroupOut,
    GroupUpdate,
)
from giftlist.schemas.user import UserSummary
from giftlist.services import group_membership
from giftlist.services.notifications import deliver_pending
from giftlist.utils.auth_dep import get_current_user
from giftlist.utils.groups import require_membership

router = APIRouter(prefix="/groups")


def member_out(member, user: User) -> GroupMemberOut:
    return GroupMemberOut(
        id=member.id,
        group_id=member.group_id,
        user=UserSummary.model_validate(user),
        role=member.role,
        joined_at=member.joined_at,
    )


@router.get("", response_model=List[GroupListItemOut])
def list_my_groups(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return [
        GroupListItemOut(**GroupOut.model_validate(g).model_dump(), role=role, member_count=count)
        for g, role, count in group_membership.list_user_groups(db, current_user.id)
    ]


@router.post("", response_model=GroupOut, status_code=status.HTTP_201_CREATED)
def create_group(
    payload: GroupCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return group_membership.create_group(
        db, owner=current_user, name=payload.name, description=payload.description
    )


@router.get("/{group_id}", response_model=GroupDetailOut)
def get_group(
    group_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    membership = require_membership(db, group_id, current_user.id)
    group: Group = membership.group
    members = [member_out(m, u) for m, u in group_membership.list_members(db, group_id)]
    return GroupDetailOut(**GroupOut.model_validate(group).model_dump(), role=membership.role, members=members)


@router.put("/{group_id}", response_model=GroupOut)
def update_group(
    group_id: str,
    payload: GroupUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return group_membership.update_group(
        db, group_id=group_id, actor=current_user, name=payload.name, description=payload.description
    )


@router.delete("/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_group(
    group_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group_membership.delete_group(db, group_id=group_id, actor=current_user)
    background_tasks.add_task(deliver_pending)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
