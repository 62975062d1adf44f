from app.services.chat_message_service import ChatMessageService, DatabaseMessageStore
from app.services.conversation_service import ConversationService
from app.services.notification_cooldown_service import NotificationCooldownService
from app.services.order_service import OrderService

__all__ = [
    "ChatMessageService",
    "ConversationService",
    "DatabaseMessageStore",
    "NotificationCooldownService",
    "OrderService",
]
