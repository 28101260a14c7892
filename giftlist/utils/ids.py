# giftlist/utils/ids.py
# Генерация непрозрачных идентификаторов и токенов приглашений.

from __future__ import annotations

import secrets
from datetime import datetime, timezone

_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"

ID_LENGTH = 12
TOKEN_LENGTH = 32


def _random_string(size: int) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(size))


def new_id() -> str:
    """Первичный ключ любой сущности: 12 символов [0-9a-z]."""
    return _random_string(ID_LENGTH)


def new_invitation_token() -> str:
    """
    Токен приглашения: единственный ключ для accept/decline,
    поэтому длиннее id (32 символа, ~165 бит энтропии).
    """
    return _random_string(TOKEN_LENGTH)


def utcnow() -> datetime:
    """Текущее время в UTC без tzinfo: так хранятся все DateTime-колонки."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
