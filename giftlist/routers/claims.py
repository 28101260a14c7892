# giftlist/routers/claims.py
# РОУТЕР БРОНЕЙ
# -----------------------------------------------------------------------------
#  - POST   /claims                : полная (amount=null) или частичная бронь
#  - GET    /claims                : мои действующие брони с позицией и владельцем
#  - DELETE /claims/{id}           : снять свою бронь
#  - POST   /claims/{id}/purchase  : отметить «куплено»
#  - DELETE /claims/{id}/purchase  : снять отметку
# Уведомления остальным получателям ставятся в outbox и доставляются после ответа.

from __future__ import annotations

from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, Response
from starlette import status
from sqlalchemy.orm import Session

from giftlist.db import get_db
from giftlist.models.user import User
from giftlist.schemas.claim import ClaimCreate, ClaimOut, ClaimedItemSummary, MyClaimOut
from giftlist.schemas.user import UserSummary
from giftlist.services import claims as claim_service
from giftlist.services.notifications import deliver_pending
from giftlist.utils.auth_dep import get_current_user

router = APIRouter(prefix="/claims")


@router.post("", response_model=ClaimOut, status_code=status.HTTP_201_CREATED)
def create_claim(
    payload: ClaimCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    claim = claim_service.create_claim(db, item_id=payload.item_id, user=current_user, amount=payload.amount)
    background_tasks.add_task(deliver_pending)
    return claim


@router.get("", response_model=List[MyClaimOut])
def list_my_claims(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    out: List[MyClaimOut] = []
    for claim, item, owner in claim_service.list_my_claims(db, current_user.id):
        out.append(
            MyClaimOut(
                **ClaimOut.model_validate(claim).model_dump(),
                item=ClaimedItemSummary(
                    id=item.id,
                    name=item.name,
                    url=item.url,
                    price=item.price,
                    image_url=item.image_url,
                    status=item.status,
                    owner=UserSummary.model_validate(owner),
                ),
            )
        )
    return out


@router.delete("/{claim_id}", status_code=status.HTTP_204_NO_CONTENT)
def release_claim(
    claim_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    claim_service.release_claim(db, claim_id=claim_id, user=current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{claim_id}/purchase", response_model=ClaimOut)
def mark_purchased(
    claim_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    claim = claim_service.mark_purchased(db, claim_id=claim_id, user=current_user)
    background_tasks.add_task(deliver_pending)
    return claim


@router.delete("/{claim_id}/purchase", response_model=ClaimOut)
def unmark_purchased(
    claim_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    claim = claim_service.unmark_purchased(db, claim_id=claim_id, user=current_user)
    background_tasks.add_task(deliver_pending)
    return claim
