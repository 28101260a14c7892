# giftlist/routers/webhooks.py
# Вебхуки провайдера идентификации: user.created / user.updated / user.deleted.
# Тело подписано HMAC-SHA256 (заголовок X-Webhook-Signature), подпись проверяется
# по сырым байтам до разбора JSON.

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session

from giftlist.db import get_db
from giftlist.models.user import User
from giftlist.schemas.webhook import AuthWebhookEvent
from giftlist.services.cascades import on_user_deleted
from giftlist.services.notifications import deliver_pending
from giftlist.services.webhook_signature import SIGNATURE_HEADER, verify_signature
from giftlist.utils.auth_dep import normalize_email
from giftlist.utils.errors import err

log = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks")


def _apply_profile(user: User, event: AuthWebhookEvent) -> None:
    if event.data.email:
        user.email = normalize_email(event.data.email)
    user.name = event.data.name
    user.avatar_url = event.data.avatar_url


@router.post("/auth")
async def auth_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    body = await request.body()
    try:
        verify_signature(body, request.headers.get(SIGNATURE_HEADER, ""))
    except ValueError:
        raise HTTPException(status_code=401, detail=err("invalid_signature", "Invalid webhook signature"))

    try:
        event = AuthWebhookEvent.model_validate_json(body)
    except ValidationError as e:
        raise HTTPException(
            status_code=400,
            detail=err("validation_error", "Invalid webhook payload", details=e.errors(include_url=False, include_context=False, include_input=False)),
        )

    external_id = event.data.id
    user = db.query(User).filter_by(external_id=external_id).first()

    if event.type in ("user.created", "user.updated"):
        if user is None:
            if not event.data.email:
                raise HTTPException(status_code=400, detail=err("validation_error", "User email is required"))
            user = User(external_id=external_id, email=normalize_email(event.data.email))
            db.add(user)
        _apply_profile(user, event)
        db.commit()
        log.info("webhook %s applied for external_id=%s", event.type, external_id)
        return {"success": True}

    # user.deleted
    if user is None:
        return {"success": True}
    on_user_deleted(db, user)
    db.commit()
    background_tasks.add_task(deliver_pending)
    log.info("webhook user.deleted applied for external_id=%s", external_id)
    return {"success": True}
