# giftlist/routers/shared_items.py
# GET /shared-items: позиции, расшаренные мне через группы (кроме моих собственных).

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from giftlist.db import get_db
from giftlist.models.item import ItemStatus
from giftlist.models.user import User
from giftlist.schemas.shared_item import SharedItemOut
from giftlist.services.shared_items import list_shared_items
from giftlist.utils.auth_dep import get_current_user

router = APIRouter(prefix="/shared-items")


@router.get("", response_model=List[SharedItemOut])
def get_shared_items(
    group_id: Optional[str] = Query(None, alias="groupId"),
    status: Optional[ItemStatus] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return list_shared_items(db, current_user, group_id=group_id, status=status)
