"""Commands for marking inbound messages read and broadcasting the change."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from app.core.unread import UnreadAggregator
from app.exceptions import NotFoundError
from app.realtime.base import PubSubTransport
from app.realtime.publish import publish_updated
from app.schemas.chat import MarkReadResult, MessageRead
from app.schemas.principal import Principal
from app.services.chat_message_service import ChatMessageService
from app.services.order_service import OrderService


class MarkReadCommand:
    def __init__(self, db: Session, transport: PubSubTransport) -> None:
        self.db = db
        self.transport = transport
        self.order_service = OrderService(db)
        self.message_service = ChatMessageService(db)
        self.unread = UnreadAggregator(db)

    def mark_conversation(self, order_id: str, principal: Principal) -> MarkReadResult:
        order = self.order_service.get_order_for_principal(order_id, principal)
        changed = self.message_service.mark_conversation_read(order.id, principal)
        publish_updated(self.transport, [MessageRead.model_validate(m) for m in changed])
        return MarkReadResult(
            marked=len(changed),
            unread_count=self.unread.count_unread(order.id, principal.id),
        )

    def mark_message(self, message_id: UUID, principal: Principal) -> MessageRead:
        message = self.message_service.get_message(message_id)
        if message is None:
            raise NotFoundError(f"Message {message_id} not found")
        self.order_service.get_order_for_principal(message.order_id, principal)
        was_read = message.is_read
        message = self.message_service.mark_read(message_id, principal)
        result = MessageRead.model_validate(message)
        if message.is_read and not was_read:
            publish_updated(self.transport, [result])
        return result
