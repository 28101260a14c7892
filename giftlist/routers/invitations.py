# giftlist/routers/invitations.py
# Приглашения глазами приглашённого:
#  - GET  /invitations                 : мои действующие pending-приглашения
#  - POST /invitations/{token}/accept  : принять (пользователь создаётся при первом входе)
#  - POST /invitations/{token}/decline : отклонить

from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from giftlist.db import get_db
from giftlist.models.user import User
from giftlist.routers.groups import member_out
from giftlist.schemas.invitation import (
    InvitationAcceptedOut,
    InvitationGroupSummary,
    InvitationOut,
    MyInvitationOut,
)
from giftlist.schemas.user import UserSummary
from giftlist.services import invitations as invitation_service
from giftlist.services.notifications import deliver_pending
from giftlist.utils.auth_dep import get_current_user, get_current_user_or_create

router = APIRouter(prefix="/invitations")


@router.get("", response_model=List[MyInvitationOut])
def list_my_invitations(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return [
        MyInvitationOut(
            id=inv.id,
            token=inv.token,
            role=inv.role,
            expires_at=inv.expires_at,
            created_at=inv.created_at,
            group=InvitationGroupSummary.model_validate(group),
            inviter=UserSummary.model_validate(inviter),
        )
        for inv, group, inviter in invitation_service.list_my_pending_invitations(db, current_user)
    ]


@router.post("/{token}/accept", response_model=InvitationAcceptedOut)
def accept_invitation(
    token: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user_or_create),
):
    invitation, membership = invitation_service.accept_invitation(db, token=token, user=current_user)
    background_tasks.add_task(deliver_pending)
    return InvitationAcceptedOut(
        invitation=InvitationOut.model_validate(invitation),
        membership=member_out(membership, current_user),
    )


@router.post("/{token}/decline", response_model=InvitationOut)
def decline_invitation(
    token: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user_or_create),
):
    return invitation_service.decline_invitation(db, token=token, user=current_user)
