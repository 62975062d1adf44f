"""Resend email adapter (https://resend.com/docs/api-reference/emails/send-email)."""

from __future__ import annotations

from typing import Optional

import requests

from app.adapters.base import BaseEmailAdapter
from app.config import Settings, get_settings
from app.exceptions import DeliveryFailure
from app.infra.logging_config import get_logger
from app.schemas.notification import EmailNotification, EmailSendResult

logger = get_logger("email")


def render_text(notification: EmailNotification) -> str:
    return (
        f"Hi {notification.recipient_name},\n\n"
        f"{notification.sender_name} sent you a message:\n\n"
        f"{notification.message_preview}\n\n"
        f"Reply here: {notification.conversation_url}\n"
    )


class ResendEmailAdapter(BaseEmailAdapter):
    def __init__(
        self,
        api_key: str,
        sender: str,
        api_url: str = "https://api.resend.com/emails",
        timeout: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._sender = sender
        self._api_url = api_url
        self._timeout = timeout

    def send(self, notification: EmailNotification) -> EmailSendResult:
        payload = {
            "from": self._sender,
            "to": [notification.to],
            "subject": notification.subject,
            "text": render_text(notification),
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        try:
            resp = requests.post(
                self._api_url, json=payload, headers=headers, timeout=self._timeout
            )
        except requests.RequestException as e:
            raise DeliveryFailure(f"Email provider unreachable: {e}") from e

        if resp.status_code >= 300:
            body = resp.text[:500] if resp.text else "no body"
            logger.warning("Resend rejected email to %s: HTTP %s", notification.to, resp.status_code)
            raise DeliveryFailure(
                f"Email provider returned HTTP {resp.status_code}: {body}",
                provider_status=resp.status_code,
            )

        try:
            message_id = resp.json().get("id")
        except ValueError:
            message_id = None
        return EmailSendResult(success=True, provider_message_id=message_id)


def build_email_adapter(settings: Optional[Settings] = None) -> Optional[BaseEmailAdapter]:
    """Adapter from config, or None when email is disabled or not configured."""
    settings = settings or get_settings()
    if not settings.email_enabled or not settings.resend_api_key:
        return None
    return ResendEmailAdapter(
        api_key=settings.resend_api_key,
        sender=settings.email_from,
        api_url=settings.resend_api_url,
        timeout=settings.http_timeout_seconds,
    )
