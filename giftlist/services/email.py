# giftlist/services/email.py
# Исходящая почта (только приглашения в группу) через SMTP.
# Не настроено (EMAIL_FROM/SMTP_HOST): письмо пропускается с предупреждением.

from __future__ import annotations

import html
import logging
import os
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional

log = logging.getLogger(__name__)

EMAIL_FROM = os.getenv("EMAIL_FROM", "").strip()
SMTP_HOST = os.getenv("SMTP_HOST", "").strip()
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "").strip()
SMTP_PASS = os.getenv("SMTP_PASS", "").strip()
SMTP_USE_SSL = os.getenv("SMTP_USE_SSL", "false").lower() in ("1", "true")


def is_configured() -> bool:
    return bool(EMAIL_FROM and SMTP_HOST)


def send_email(subject: str, html_body: str, text_body: Optional[str], recipients: List[str]) -> bool:
    """
    Отправляет письмо. False: письмо пропущено (нет получателей или конфигурации).
    Ошибки SMTP пробрасываются вызывающему.
    """
    if not recipients:
        log.warning("No recipients provided for email '%s'; skipping send.", subject)
        return False

    if not is_configured():
        log.warning("Email not configured (EMAIL_FROM/SMTP_HOST); skipping email: %s", subject)
        return False

    msg = MIMEMultipart("alternative")
    msg["From"] = EMAIL_FROM
    msg["To"] = ", ".join(recipients)
    msg["Subject"] = subject

    msg.attach(MIMEText(text_body or "HTML capable email client required to view this message.", "plain", "utf-8"))
    msg.attach(MIMEText(html_body, "html", "utf-8"))

    if SMTP_USE_SSL:
        server = smtplib.SMTP_SSL(SMTP_HOST, SMTP_PORT, timeout=30)
    else:
        server = smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=30)

    try:
        if not SMTP_USE_SSL:
            server.starttls()
        if SMTP_USER:
            server.login(SMTP_USER, SMTP_PASS)
        server.sendmail(EMAIL_FROM, recipients, msg.as_string())
        log.info("Email sent to %s: %s", recipients, subject)
    finally:
        try:
            server.quit()
        except smtplib.SMTPException:
            pass
    return True


def send_invitation_email(*, to: str, inviter_name: str, group_name: str, invite_url: str) -> bool:
    """
    Письмо-приглашение. Никогда не роняет создание приглашения: ошибка только логируется.
    """
    subject = f'{inviter_name} invited you to join "{group_name}"'
    text_body = (
        f'{inviter_name} invited you to join the wishlist group "{group_name}".\n\n'
        f"Accept the invitation: {invite_url}\n"
    )
    html_body = (
        f"<p><strong>{html.escape(inviter_name)}</strong> invited you to join the wishlist group "
        f"<strong>{html.escape(group_name)}</strong>.</p>"
        f'<p><a href="{html.escape(invite_url, quote=True)}">Accept the invitation</a></p>'
    )
    try:
        return send_email(subject, html_body, text_body, [to])
    except (smtplib.SMTPException, OSError):
        log.exception("invitation email to %s failed (non-fatal)", to)
        return False
