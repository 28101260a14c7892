# giftlist/routers/group_invitations.py
# Приглашения конкретной группы: выдача, просмотр и отзыв (owner/admin).

from typing import List

from fastapi import APIRouter, Depends, Request, Response
from starlette import status
from sqlalchemy.orm import Session

from giftlist.db import get_db
from giftlist.models.group_member import MemberRole
from giftlist.models.user import User
from giftlist.schemas.invitation import InvitationCreate, InvitationOut
from giftlist.services import invitations as invitation_service
from giftlist.utils.auth_dep import get_current_user

router = APIRouter(prefix="/groups/{group_id}/invitations")


@router.get("", response_model=List[InvitationOut])
def list_group_invitations(
    group_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return invitation_service.list_group_invitations(db, group_id=group_id, actor=current_user)


@router.post("", response_model=InvitationOut, status_code=status.HTTP_201_CREATED)
def create_invitation(
    group_id: str,
    payload: InvitationCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return invitation_service.create_invitation(
        db,
        group_id=group_id,
        inviter=current_user,
        email=payload.email,
        role=MemberRole(payload.role),
        base_url=str(request.base_url),
    )


@router.get("/{invitation_id}", response_model=InvitationOut)
def get_group_invitation(
    group_id: str,
    invitation_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return invitation_service.get_group_invitation(
        db, group_id=group_id, invitation_id=invitation_id, actor=current_user
    )


@router.delete("/{invitation_id}", status_code=status.HTTP_204_NO_CONTENT)
def revoke_invitation(
    group_id: str,
    invitation_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    invitation_service.revoke_invitation(db, group_id=group_id, invitation_id=invitation_id, actor=current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
