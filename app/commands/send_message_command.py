"""
Command to send a chat message.

Persists the message, runs the cooldown engine for the recipient's direction,
emails an offline recipient when the window allows and broadcasts the insert.
Only validation, auth and storage failures fail the command; email and
broadcast failures are reported alongside a successful send.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from app.adapters.base import BaseEmailAdapter
from app.commands.notification_email import (
    conversation_url,
    message_subject,
    truncate,
)
from app.config import Settings, get_settings
from app.core.cooldown import NotificationCooldownEngine, direction_for
from app.core.presence import lookup_presence
from app.exceptions import DeliveryFailure
from app.infra.logging_config import get_logger
from app.realtime.base import PubSubTransport
from app.realtime.publish import publish_inserted
from app.schemas.chat import (
    MessageCreate,
    MessageRead,
    SendMessageRequest,
    SendMessageResult,
    SenderRole,
)
from app.schemas.notification import EmailNotification
from app.schemas.principal import Principal
from app.services.chat_message_service import ChatMessageService, clean_content
from app.services.notification_cooldown_service import NotificationCooldownService
from app.services.order_service import OrderService, Participant
from app.utils.metrics import (
    CHAT_MESSAGES_SENT_TOTAL,
    EMAIL_DELIVERIES_TOTAL,
    NOTIFICATION_DECISIONS_TOTAL,
)

logger = get_logger("send_message")


class SendMessageCommand:
    def __init__(
        self,
        db: Session,
        transport: PubSubTransport,
        email_adapter: Optional[BaseEmailAdapter] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.db = db
        self.transport = transport
        self.email_adapter = email_adapter
        self.settings = settings or get_settings()
        self.engine = NotificationCooldownEngine(self.settings.notification_cooldown)
        self.order_service = OrderService(db)
        self.message_service = ChatMessageService(db)
        self.cooldown_service = NotificationCooldownService(db)

    def execute(
        self, order_id: str, principal: Principal, body: SendMessageRequest
    ) -> SendMessageResult:
        """
        Send ``body`` into the conversation of ``order_id`` as ``principal``.

        Raises:
            MessageValidationError: empty or oversized content (checked first).
            NotFoundError: unknown order, or principal is not a participant.
        """
        content = clean_content(body.content, self.settings.message_max_length)
        order = self.order_service.get_order_for_principal(order_id, principal)
        role = self.order_service.role_for(order, principal)

        message = self.message_service.create_message(
            order.id,
            MessageCreate(
                sender_role=role,
                sender_id=principal.id,
                sender_name=principal.display_name,
                content=content,
            ),
            self.settings.message_max_length,
        )
        CHAT_MESSAGES_SENT_TOTAL.labels(role=role.value).inc()
        result = SendMessageResult(success=True)

        direction = direction_for(role)
        if direction is not None:
            recipient = self.order_service.counterpart(order, role)
            has_recipient = recipient is not None and bool(recipient.email)
            recipient_online = (
                lookup_presence(self.transport, recipient.id).other_user_online
                if recipient is not None
                else False
            )
            cooldown = self.cooldown_service.get_or_create_cooldown(order.id, direction)
            decision = self.engine.on_message_sent(
                cooldown,
                recipient_online=recipient_online,
                explicit_notify_requested=body.notify,
                has_recipient=has_recipient,
            )
            if decision.should_email:
                cooldown.last_notified_by = principal.id
            # decision is durable before any delivery attempt
            self.db.commit()
            NOTIFICATION_DECISIONS_TOTAL.labels(
                trigger="message", reason=decision.reason.value
            ).inc()
            logger.info(
                "Message %s in %s (%s): %s, queued=%d",
                message.id,
                order.id,
                direction.value,
                decision.reason.value,
                decision.queued_unnotified_count,
            )
            result.queued_unnotified_count = decision.queued_unnotified_count
            result.cooldown_remaining_seconds = decision.remaining_seconds

            if decision.should_email:
                result.email_sent, result.email_error = self._send_email(
                    principal, recipient, order.id, content
                )
                if result.email_sent:
                    self.message_service.mark_notification_sent([message])

        result.message = MessageRead.model_validate(message)
        publish_inserted(self.transport, result.message)
        return result

    def _send_email(
        self, sender: Principal, recipient: Participant, conversation_id: str, content: str
    ) -> tuple[bool, Optional[str]]:
        if self.email_adapter is None:
            EMAIL_DELIVERIES_TOTAL.labels(kind="message", status="disabled").inc()
            logger.info("Email disabled; not notifying %s", recipient.email)
            return False, None
        notification = EmailNotification(
            to=recipient.email,
            subject=message_subject(sender.display_name),
            recipient_name=recipient.display_name,
            sender_name=sender.display_name,
            message_preview=truncate(content),
            conversation_url=conversation_url(self.settings, conversation_id),
        )
        try:
            self.email_adapter.send(notification)
        except DeliveryFailure as e:
            EMAIL_DELIVERIES_TOTAL.labels(kind="message", status="failure").inc()
            logger.warning(
                "Email notification for %s failed: %s", conversation_id, e.detail
            )
            return False, e.detail
        EMAIL_DELIVERIES_TOTAL.labels(kind="message", status="success").inc()
        return True, None
