# alchemist/services/email.py
from __future__ import annotations
import logging, re

import requests
from markupsafe import escape

from ..errors import ExternalServiceError, ValidationError

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"
EMAIL_PAT = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def validate_email(email: str | None) -> str:
    email = (email or "").strip()
    if not EMAIL_PAT.match(email):
        raise ValidationError("Please enter a valid email address")
    return email


def send_tx_email(api_key: str, sender: str, to: list[str], subject: str, html: str, http=requests) -> dict:
    """
    Very small helper around Resend's HTTP API.
    """
    if not api_key:
        raise ExternalServiceError("Email provider is not configured")
    payload = {"from": sender, "to": to, "subject": subject, "html": html}
    try:
        r = http.post(RESEND_URL, json=payload, headers={"Authorization": f"Bearer {api_key}"}, timeout=15)
    except requests.RequestException as e:
        raise ExternalServiceError("Could not reach the email provider", cause=e) from e
    if r.status_code >= 300:
        logger.error("send_tx_email failed: %s %s", r.status_code, r.text)
        raise ExternalServiceError("Email provider rejected the message")
    return r.json() if r.content else {}


def send_support_email(api_key: str, sender: str, inbox: str, user_email: str, message: str, http=requests) -> dict:
    user_email = validate_email(user_email)
    message = (message or "").strip()
    if not message:
        raise ValidationError("Message is required.")
    html = (
        "<h1>New Support Request</h1>"
        f"<p><strong>From:</strong> {escape(user_email)}</p>"
        "<p><strong>Message:</strong></p>"
        f"<p>{escape(message)}</p>"
    )
    resp = send_tx_email(api_key, sender, [inbox], "Support Request from Resume Alchemist", html, http=http)
    logger.info("support email sent for %s", user_email)
    return resp
