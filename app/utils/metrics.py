"""Prometheus metrics for the chat core."""

from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest

# role: customer, expert, system
CHAT_MESSAGES_SENT_TOTAL = Counter(
    "chat_messages_sent_total",
    "Messages persisted to a conversation",
    labelnames=["role"],
)

# trigger: message, notify; reason: no_recipient, recipient_online, notified, in_cooldown
NOTIFICATION_DECISIONS_TOTAL = Counter(
    "chat_notification_decisions_total",
    "Cooldown engine decisions",
    labelnames=["trigger", "reason"],
)

# kind: message, batch; status: success, failure, disabled
EMAIL_DELIVERIES_TOTAL = Counter(
    "chat_email_deliveries_total",
    "Email notification attempts",
    labelnames=["kind", "status"],
)

TRANSPORT_ERRORS_TOTAL = Counter(
    "chat_transport_errors_total",
    "Publish/subscribe operations that failed on a dropped transport",
    labelnames=["operation"],
)


def get_metrics() -> bytes:
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
