# giftlist/utils/auth_dep.py
"""
Авторизация по Bearer JWT внешнего провайдера идентификации.
- validate_and_sync_user: проверка токена + ленивое обновление полей пользователя в БД
- get_current_user: FastAPI-зависимость (не создаёт пользователя, только валидирует и обновляет)
- get_current_user_or_create: то же, но создаёт пользователя при первом входе
"""

import logging
import os
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError
from sqlalchemy.orm import Session

from giftlist.db import get_db
from giftlist.models.user import User
from giftlist.utils.errors import err

log = logging.getLogger(__name__)

AUTH_JWT_SECRET = os.getenv("AUTH_JWT_SECRET")
AUTH_JWT_AUDIENCE = os.getenv("AUTH_JWT_AUDIENCE") or None
AUTH_JWT_ISSUER = os.getenv("AUTH_JWT_ISSUER") or None

if not AUTH_JWT_SECRET:
    log.warning("AUTH_JWT_SECRET is not set: every authenticated request will be rejected")

bearer_scheme = HTTPBearer(auto_error=False)


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def decode_token(token: str) -> Dict[str, Any]:
    """
    Декодирует и проверяет подпись HS256. Любая ошибка -> 401 invalid_token.
    """
    if not AUTH_JWT_SECRET:
        raise HTTPException(status_code=401, detail=err("invalid_token", "Token verification is not configured"))

    options = {"require": ["sub", "exp"], "verify_aud": AUTH_JWT_AUDIENCE is not None}
    try:
        return jwt.decode(
            token,
            AUTH_JWT_SECRET,
            algorithms=["HS256"],
            audience=AUTH_JWT_AUDIENCE,
            issuer=AUTH_JWT_ISSUER,
            options=options,
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail=err("invalid_token", "Token has expired"))
    except InvalidTokenError as e:
        log.info("rejected bearer token: %s", e)
        raise HTTPException(status_code=401, detail=err("invalid_token", "Invalid token"))


def _apply_user_fields_from_claims(u: User, claims: Dict[str, Any]) -> bool:
    """
    Копируем в User поля профиля из токена. Возвращает True, если что-то изменилось.
    Отсутствующие в токене поля не затираем.
    """
    changed = False

    def upd(field: str, new_val):
        nonlocal changed
        if new_val is not None and getattr(u, field) != new_val:
            setattr(u, field, new_val)
            changed = True

    email = claims.get("email")
    upd("email", normalize_email(email) if email else None)
    upd("name", claims.get("name"))
    upd("avatar_url", claims.get("picture"))
    return changed


def validate_and_sync_user(token: Optional[str], db: Session, *, create_if_missing: bool) -> User:
    """
    Валидирует токен, находит/создаёт пользователя по external_id (sub) и лениво обновляет его поля.
    """
    if not token:
        raise HTTPException(status_code=401, detail=err("auth_required", "Authorization required"))

    claims = decode_token(token)
    external_id = str(claims["sub"])

    user: Optional[User] = db.query(User).filter_by(external_id=external_id).first()

    if not user:
        if not create_if_missing:
            raise HTTPException(status_code=401, detail=err("user_not_registered", "User is not registered"))
        email = normalize_email(claims.get("email"))
        if not email:
            raise HTTPException(status_code=401, detail=err("invalid_token", "Token carries no email"))
        user = User(
            external_id=external_id,
            email=email,
            name=claims.get("name"),
            avatar_url=claims.get("picture"),
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        log.info("user %s created from token (external_id=%s)", user.id, external_id)
        return user

    if _apply_user_fields_from_claims(user, claims):
        db.add(user)
        db.commit()
        db.refresh(user)

    return user


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """
    Зависимость для защищённых ручек: пользователь уже должен существовать
    (создаётся вебхуком провайдера или get_current_user_or_create).
    """
    token = credentials.credentials if credentials else None
    return validate_and_sync_user(token, db, create_if_missing=False)


def get_current_user_or_create(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """
    То же самое, что get_current_user, но с create_if_missing=True.
    Для первого входа (users/me) и принятия приглашения по ссылке.
    """
    token = credentials.credentials if credentials else None
    return validate_and_sync_user(token, db, create_if_missing=True)
