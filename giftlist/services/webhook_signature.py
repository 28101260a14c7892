# giftlist/services/webhook_signature.py
# Подпись вебхуков провайдера идентификации: HMAC-SHA256 над сырым телом,
# base64url без паддинга, заголовок X-Webhook-Signature.

from __future__ import annotations

import base64
import hashlib
import hmac
import os

SIGNATURE_HEADER = "X-Webhook-Signature"


def _secret() -> bytes:
    s = os.environ.get("AUTH_WEBHOOK_SECRET")
    if not s:
        raise RuntimeError("AUTH_WEBHOOK_SECRET is not set")
    return s.encode("utf-8")


def _b64url_encode(b: bytes) -> str:
    return base64.urlsafe_b64encode(b).decode("ascii").rstrip("=")


def _b64url_fixpad(s: str) -> str:
    rem = len(s) % 4
    return s + ("=" * ((4 - rem) % 4))


def sign_payload(body: bytes) -> str:
    return _b64url_encode(hmac.new(_secret(), body, hashlib.sha256).digest())


def verify_signature(body: bytes, signature: str) -> None:
    """
    ValueError("bad_signature"): подпись отсутствует, битая или не совпала.
    """
    if not signature:
        raise ValueError("bad_signature")

    sig = signature.strip()
    if sig.lower().startswith("sha256="):
        sig = sig[len("sha256="):]

    want = hmac.new(_secret(), body, hashlib.sha256).digest()
    try:
        got = base64.urlsafe_b64decode(_b64url_fixpad(sig))
    except (ValueError, TypeError):
        raise ValueError("bad_signature")

    if not hmac.compare_digest(want, got):
        raise ValueError("bad_signature")
