"""
Command for the sender's explicit "Notify" once a cooldown window has elapsed.

Emails one digest of the sender's unread, not-yet-notified messages. The
cooldown floor applies exactly as for automatic notifications.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from app.adapters.base import BaseEmailAdapter
from app.commands.notification_email import batch_preview, batch_subject, conversation_url
from app.config import Settings, get_settings
from app.core.cooldown import DecisionReason, NotificationCooldownEngine, direction_for
from app.core.presence import lookup_presence
from app.exceptions import DeliveryFailure
from app.infra.logging_config import get_logger
from app.realtime.base import PubSubTransport
from app.schemas.chat import BatchNotificationResult
from app.schemas.notification import EmailNotification
from app.schemas.principal import Principal
from app.services.chat_message_service import ChatMessageService
from app.services.notification_cooldown_service import NotificationCooldownService
from app.services.order_service import OrderService
from app.utils.metrics import EMAIL_DELIVERIES_TOTAL, NOTIFICATION_DECISIONS_TOTAL

logger = get_logger("batch_notification")


class SendBatchNotificationCommand:
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

    def execute(self, order_id: str, principal: Principal) -> BatchNotificationResult:
        order = self.order_service.get_order_for_principal(order_id, principal)
        role = self.order_service.role_for(order, principal)
        direction = direction_for(role)
        recipient = self.order_service.counterpart(order, role)
        if direction is None or recipient is None or not recipient.email:
            return BatchNotificationResult(success=False, error="No recipient to notify")

        cooldown = self.cooldown_service.get_or_create_cooldown(order.id, direction)
        remaining = self.engine.remaining(cooldown)
        if remaining.total_seconds() > 0:
            decision = self.engine.on_notify_requested(
                cooldown, recipient_online=False, has_recipient=True
            )
            NOTIFICATION_DECISIONS_TOTAL.labels(
                trigger="notify", reason=decision.reason.value
            ).inc()
            return BatchNotificationResult(
                success=False,
                error="Notification cooldown is still active",
                cooldown_remaining_seconds=decision.remaining_seconds,
            )

        pending = self.message_service.get_pending_notification_messages(
            order.id, principal.id
        )
        if not pending:
            return BatchNotificationResult(
                success=False, error="No unread messages to send"
            )

        recipient_online = lookup_presence(self.transport, recipient.id).other_user_online
        decision = self.engine.on_notify_requested(
            cooldown, recipient_online=recipient_online, has_recipient=True
        )
        if decision.should_email:
            cooldown.last_notified_by = principal.id
        self.db.commit()
        NOTIFICATION_DECISIONS_TOTAL.labels(
            trigger="notify", reason=decision.reason.value
        ).inc()

        result = BatchNotificationResult(success=True, message_count=len(pending))
        if decision.reason == DecisionReason.RECIPIENT_ONLINE:
            logger.info("Recipient online for %s; batch notification skipped", order.id)
            return result

        if self.email_adapter is None:
            EMAIL_DELIVERIES_TOTAL.labels(kind="batch", status="disabled").inc()
            logger.info("Email disabled; batch for %s not delivered", order.id)
            return result

        notification = EmailNotification(
            to=recipient.email,
            subject=batch_subject(len(pending), principal.display_name),
            recipient_name=recipient.display_name,
            sender_name=principal.display_name,
            message_preview=batch_preview(pending, self.settings.batch_preview_limit),
            conversation_url=conversation_url(self.settings, order.id),
        )
        try:
            self.email_adapter.send(notification)
        except DeliveryFailure as e:
            EMAIL_DELIVERIES_TOTAL.labels(kind="batch", status="failure").inc()
            logger.warning("Batch notification for %s failed: %s", order.id, e.detail)
            result.email_error = e.detail
            return result

        EMAIL_DELIVERIES_TOTAL.labels(kind="batch", status="success").inc()
        self.message_service.mark_notification_sent(pending)
        result.email_sent = True
        logger.info("Batch notification for %s covered %d messages", order.id, len(pending))
        return result
