# giftlist/routers/group_members.py
# РОУТЕР УЧАСТНИКОВ ГРУППЫ
# -----------------------------------------------------------------------------
# Удаление участника:
#   • owner не удаляется никогда;
#   • самоудаление (выход) разрешено всегда;
#   • admin удаляет только простых участников, admin'ов: только owner.
# Брони удалённого на позициях группы снимаются каскадом.

from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, Response
from starlette import status
from sqlalchemy.orm import Session

from giftlist.db import get_db
from giftlist.models.user import User
from giftlist.routers.groups import member_out
from giftlist.schemas.group import GroupMemberOut
from giftlist.services import group_membership
from giftlist.services.notifications import deliver_pending
from giftlist.utils.auth_dep import get_current_user
from giftlist.utils.groups import require_membership

router = APIRouter(prefix="/groups/{group_id}/members")


@router.get("", response_model=List[GroupMemberOut])
def list_members(
    group_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    require_membership(db, group_id, current_user.id)
    return [member_out(m, u) for m, u in group_membership.list_members(db, group_id)]


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_member(
    group_id: str,
    user_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group_membership.remove_member(db, group_id=group_id, target_user_id=user_id, actor=current_user)
    background_tasks.add_task(deliver_pending)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
