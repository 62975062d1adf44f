from app.models.chat_message import ChatMessage
from app.models.notification_cooldown import NotificationCooldown
from app.models.order import Order

__all__ = [
    "ChatMessage",
    "NotificationCooldown",
    "Order",
]
