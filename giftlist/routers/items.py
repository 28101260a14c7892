# giftlist/routers/items.py
# РОУТЕР ПОЗИЦИЙ ВИШЛИСТА (только владелец)
# -----------------------------------------------------------------------------
#  - GET/POST /items, GET/PUT/DELETE /items/{id}
#  - POST /items/{id}/archive | /receive | /restore: жизненный цикл
#  - GET/POST/DELETE /items/{id}/recipients: расшаривание в группы
# Ответы владельцу не содержат данных о бронях.

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Response
from starlette import status
from sqlalchemy.orm import Session

from giftlist.db import get_db
from giftlist.models.item import ItemStatus
from giftlist.models.user import User
from giftlist.schemas.item import ItemCreate, ItemOut, ItemUpdate
from giftlist.schemas.recipient import RecipientOut, RecipientsChange, RecipientsRemovedOut
from giftlist.services import items as item_service
from giftlist.services import recipients as recipient_service
from giftlist.services.notifications import deliver_pending
from giftlist.utils.auth_dep import get_current_user

router = APIRouter(prefix="/items")


@router.get("", response_model=List[ItemOut])
def list_items(
    status_filter: Optional[ItemStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return item_service.list_items(db, owner=current_user, status=status_filter)


@router.post("", response_model=ItemOut, status_code=status.HTTP_201_CREATED)
def create_item(
    payload: ItemCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return item_service.create_item(db, owner=current_user, data=payload.model_dump())


@router.get("/{item_id}", response_model=ItemOut)
def get_item(
    item_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return item_service.get_owned_item_or_404(db, item_id, current_user.id)


@router.put("/{item_id}", response_model=ItemOut)
def update_item(
    item_id: str,
    payload: ItemUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("name", "") is None:
        changes.pop("name")
    item = item_service.update_item(db, item_id=item_id, owner=current_user, changes=changes)
    # смена цены снимает просроченные брони, их уведомления в outbox
    background_tasks.add_task(deliver_pending)
    return item


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_item(
    item_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    item_service.delete_item(db, item_id=item_id, owner=current_user)
    background_tasks.add_task(deliver_pending)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ===== Жизненный цикл ========================================================

@router.post("/{item_id}/archive", response_model=ItemOut)
def archive_item(
    item_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return item_service.archive_item(db, item_id=item_id, owner=current_user)


@router.post("/{item_id}/receive", response_model=ItemOut)
def receive_item(
    item_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    item = item_service.receive_item(db, item_id=item_id, owner=current_user)
    background_tasks.add_task(deliver_pending)
    return item


@router.post("/{item_id}/restore", response_model=ItemOut)
def restore_item(
    item_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return item_service.restore_item(db, item_id=item_id, owner=current_user)


# ===== Получатели (группы) ===================================================

def _recipient_out(tag, group) -> RecipientOut:
    return RecipientOut(
        id=tag.id,
        item_id=tag.item_id,
        group_id=group.id,
        group_name=group.name,
        created_at=tag.created_at,
    )


@router.get("/{item_id}/recipients", response_model=List[RecipientOut])
def list_recipients(
    item_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return [_recipient_out(t, g) for t, g in recipient_service.list_recipients(db, item_id=item_id, user=current_user)]


@router.post("/{item_id}/recipients", response_model=List[RecipientOut], status_code=status.HTTP_201_CREATED)
def add_recipients(
    item_id: str,
    payload: RecipientsChange,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    created = recipient_service.add_recipients(
        db, item_id=item_id, group_ids=payload.group_ids, user=current_user
    )
    return [_recipient_out(t, g) for t, g in created]


@router.delete("/{item_id}/recipients", response_model=RecipientsRemovedOut)
def remove_recipients(
    item_id: str,
    payload: RecipientsChange,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    removed, released = recipient_service.remove_recipients(
        db, item_id=item_id, group_ids=payload.group_ids, user=current_user
    )
    background_tasks.add_task(deliver_pending)
    return RecipientsRemovedOut(removed_group_ids=removed, released_claims=len(released))
