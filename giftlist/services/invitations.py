# giftlist/services/invitations.py
# -----------------------------------------------------------------------------
# ПРИГЛАШЕНИЯ В ГРУППУ ПО EMAIL
# -----------------------------------------------------------------------------
# pending -> accepted | declined | expired, переходы необратимы.
# Токен: единственный ключ для accept/decline; email приглашённого должен
# совпадать с email авторизованного пользователя (без учёта регистра).

from __future__ import annotations

import logging
import os
from datetime import timedelta
from typing import List, Optional, Tuple

from fastapi import HTTPException
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from giftlist.models.group import Group
from giftlist.models.group_member import GroupMember, MemberRole
from giftlist.models.invitation import Invitation, InvitationStatus
from giftlist.models.user import User
from giftlist.services.email import send_invitation_email
from giftlist.services.group_membership import add_member, is_member
from giftlist.services.notifications import GROUP_INVITATION, INVITATION_ACCEPTED, create_notification
from giftlist.utils.auth_dep import normalize_email
from giftlist.utils.errors import err
from giftlist.utils.groups import require_owner_or_admin
from giftlist.utils.ids import new_invitation_token, utcnow

log = logging.getLogger(__name__)

INVITATION_EXPIRY_DAYS = int(os.getenv("INVITATION_EXPIRY_DAYS", "7"))
PUBLIC_APP_URL = (os.getenv("PUBLIC_APP_URL") or "").rstrip("/")


def build_invite_url(token: str, base_url: Optional[str] = None) -> str:
    base = PUBLIC_APP_URL or (base_url or "").rstrip("/")
    return f"{base}/invite/{token}"


def _find_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.scalar(select(User).where(func.lower(User.email) == email).limit(1))


# =========================
# СОЗДАНИЕ / ОТЗЫВ
# =========================

def create_invitation(
    db: Session,
    *,
    group_id: str,
    inviter: User,
    email: str,
    role: MemberRole = MemberRole.member,
    base_url: Optional[str] = None,
) -> Invitation:
    """
    Только owner/admin. Отказ (409), если приглашённый уже участник или
    на этот email уже есть действующее pending-приглашение.
    Письмо и in-app уведомление: после commit, их ошибки не ломают создание.
    """
    membership = require_owner_or_admin(db, group_id, inviter.id)
    group = membership.group
    email = normalize_email(email)

    if role == MemberRole.owner:
        raise HTTPException(status_code=400, detail=err("validation_error", "Cannot invite with the owner role"))

    invitee = _find_user_by_email(db, email)
    if invitee and is_member(db, group.id, invitee.id):
        raise HTTPException(status_code=409, detail=err("already_member", "User is already a member of this group"))

    now = utcnow()
    pending = db.scalars(
        select(Invitation).where(
            Invitation.group_id == group.id,
            Invitation.invitee_email == email,
            Invitation.status == InvitationStatus.pending,
        )
    ).all()
    for p in pending:
        if p.expires_at > now:
            raise HTTPException(
                status_code=409,
                detail=err("invitation_pending", "A pending invitation already exists for this email"),
            )
        # просроченное, но не отмеченное: фиксируем статус
        p.status = InvitationStatus.expired

    invitation = Invitation(
        group_id=group.id,
        inviter_id=inviter.id,
        invitee_email=email,
        role=role,
        token=new_invitation_token(),
        status=InvitationStatus.pending,
        expires_at=now + timedelta(days=INVITATION_EXPIRY_DAYS),
    )
    db.add(invitation)
    db.commit()
    db.refresh(invitation)
    log.info("invitation %s to %s for group %s created by %s", invitation.id, email, group.id, inviter.id)

    invite_url = build_invite_url(invitation.token, base_url)
    inviter_name = inviter.display_name
    send_invitation_email(to=email, inviter_name=inviter_name, group_name=group.name, invite_url=invite_url)

    if invitee:
        create_notification(
            db,
            user_id=invitee.id,
            type=GROUP_INVITATION,
            title=f"Invitation to {group.name}",
            body=f'{inviter_name} invited you to join "{group.name}"',
            data={
                "group_id": group.id,
                "group_name": group.name,
                "inviter_name": inviter_name,
                "invite_url": invite_url,
                "token": invitation.token,
            },
        )
    return invitation


def revoke_invitation(db: Session, *, group_id: str, invitation_id: str, actor: User) -> None:
    require_owner_or_admin(db, group_id, actor.id)
    invitation = _get_group_invitation_or_404(db, group_id, invitation_id)
    if invitation.status != InvitationStatus.pending:
        raise HTTPException(
            status_code=409,
            detail=err(
                f"invitation_already_{invitation.status.value}",
                f"Cannot revoke invitation that has been {invitation.status.value}",
            ),
        )
    db.delete(invitation)
    db.commit()
    log.info("invitation %s revoked by %s", invitation_id, actor.id)


# =========================
# ПРИНЯТИЕ / ОТКЛОНЕНИЕ
# =========================

def get_invitation_by_token_or_404(db: Session, token: str) -> Invitation:
    invitation = db.scalar(select(Invitation).where(Invitation.token == token))
    if not invitation:
        raise HTTPException(status_code=404, detail=err("invitation_not_found", "Invitation not found"))
    return invitation


def _ensure_addressed_to(invitation: Invitation, user: User) -> None:
    if normalize_email(invitation.invitee_email) != normalize_email(user.email):
        raise HTTPException(
            status_code=403,
            detail=err("invitation_email_mismatch", "This invitation was not sent to your email"),
        )


def _ensure_pending(invitation: Invitation) -> None:
    if invitation.status != InvitationStatus.pending:
        raise HTTPException(
            status_code=409,
            detail=err(
                f"invitation_already_{invitation.status.value}",
                f"Invitation has already been {invitation.status.value}",
            ),
        )


def accept_invitation(db: Session, *, token: str, user: User) -> Tuple[Invitation, GroupMember]:
    """
    Порядок проверок: email -> pending -> срок (иначе статус expired и 410) -> группа существует.
    Затем членство (с каскадом «владелец вступил»), статус accepted,
    уведомление пригласившему и остальным участникам.
    """
    invitation = get_invitation_by_token_or_404(db, token)
    _ensure_addressed_to(invitation, user)
    _ensure_pending(invitation)

    if invitation.expires_at <= utcnow():
        invitation.status = InvitationStatus.expired
        db.commit()
        raise HTTPException(status_code=410, detail=err("invitation_expired", "Invitation has expired"))

    group = db.get(Group, invitation.group_id)
    if not group:
        raise HTTPException(status_code=404, detail=err("group_not_found", "Group no longer exists"))

    if is_member(db, group.id, user.id):
        raise HTTPException(status_code=409, detail=err("already_member", "You are already a member of this group"))

    member = add_member(db, group, user, role=invitation.role, notify_exclude=[invitation.inviter_id])
    invitation.status = InvitationStatus.accepted
    db.commit()
    db.refresh(invitation)
    db.refresh(member)

    if invitation.inviter_id != user.id:
        create_notification(
            db,
            user_id=invitation.inviter_id,
            type=INVITATION_ACCEPTED,
            title="Invitation Accepted",
            body=f'{user.display_name} accepted your invitation to join "{group.name}"',
            data={"group_id": group.id, "group_name": group.name, "accepter_name": user.display_name},
        )
    log.info("invitation %s accepted by user %s", invitation.id, user.id)
    return invitation, member


def decline_invitation(db: Session, *, token: str, user: User) -> Invitation:
    invitation = get_invitation_by_token_or_404(db, token)
    _ensure_addressed_to(invitation, user)
    _ensure_pending(invitation)

    invitation.status = InvitationStatus.declined
    db.commit()
    db.refresh(invitation)
    log.info("invitation %s declined by user %s", invitation.id, user.id)
    return invitation


# =========================
# ЧТЕНИЕ
# =========================

def _get_group_invitation_or_404(db: Session, group_id: str, invitation_id: str) -> Invitation:
    invitation = db.scalar(
        select(Invitation).where(Invitation.id == invitation_id, Invitation.group_id == group_id)
    )
    if not invitation:
        raise HTTPException(status_code=404, detail=err("invitation_not_found", "Invitation not found"))
    return invitation


def get_group_invitation(db: Session, *, group_id: str, invitation_id: str, actor: User) -> Invitation:
    require_owner_or_admin(db, group_id, actor.id)
    return _get_group_invitation_or_404(db, group_id, invitation_id)


def list_group_invitations(db: Session, *, group_id: str, actor: User) -> List[Invitation]:
    require_owner_or_admin(db, group_id, actor.id)
    return list(
        db.scalars(
            select(Invitation)
            .where(Invitation.group_id == group_id)
            .order_by(Invitation.created_at.desc(), Invitation.id.asc())
        ).all()
    )


def _my_pending_clause(user: User):
    return (
        Invitation.invitee_email == normalize_email(user.email),
        Invitation.status == InvitationStatus.pending,
        Invitation.expires_at > utcnow(),
    )


def list_my_pending_invitations(db: Session, user: User) -> List[Tuple[Invitation, Group, User]]:
    """Действующие приглашения пользователя с группой и пригласившим."""
    rows = db.execute(
        select(Invitation, Group, User)
        .join(Group, Group.id == Invitation.group_id)
        .join(User, User.id == Invitation.inviter_id)
        .where(*_my_pending_clause(user))
        .order_by(Invitation.created_at.desc(), Invitation.id.asc())
    ).all()
    return [(i, g, u) for (i, g, u) in rows]


def count_my_pending_invitations(db: Session, user: User) -> int:
    return int(db.scalar(select(func.count(Invitation.id)).where(*_my_pending_clause(user))) or 0)
