# giftlist/utils/errors.py
# Единый формат detail для HTTPException: {"code", "message", ...доп. поля}

from typing import Any, Dict

from fastapi import HTTPException


def err(code: str, message: str, **extra: Any) -> Dict[str, Any]:
    return {"code": code, "message": message} | extra


def http_error(status_code: int, code: str, message: str, **extra: Any) -> HTTPException:
    return HTTPException(status_code=status_code, detail=err(code, message, **extra))
