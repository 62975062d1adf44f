"""Message store over the chat_messages table."""

from __future__ import annotations

from contextlib import AbstractContextManager
from datetime import timedelta
from typing import Callable, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from app.exceptions import MessageValidationError, NotFoundError, UnauthorizedError
from app.models.chat_message import ChatMessage
from app.models.order import Order
from app.realtime.base import PubSubTransport
from app.realtime.publish import publish_updated
from app.schemas.chat import MessageCreate, MessageRead, SenderRole
from app.schemas.principal import Principal
from app.services.order_service import OrderService
from app.utils.dates import ensure_utc, utcnow

TIE_BREAK = timedelta(microseconds=1)


def clean_content(content: Optional[str], max_length: int) -> str:
    """Trimmed content, or MessageValidationError when empty or too long."""
    text = (content or "").strip()
    if not text:
        raise MessageValidationError("Message content cannot be empty")
    if len(text) > max_length:
        raise MessageValidationError(
            f"Message content exceeds {max_length} characters"
        )
    return text


class ChatMessageService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _require_order(self, conversation_id: str) -> None:
        exists = self.db.query(Order.id).filter(Order.id == conversation_id).first()
        if exists is None:
            raise NotFoundError(f"Conversation {conversation_id} not found")

    def create_message(
        self, conversation_id: str, data: MessageCreate, max_length: int
    ) -> ChatMessage:
        """
        Append a message. created_at is strictly increasing within a
        conversation; a clock tie or step back is bumped by one microsecond.
        """
        content = clean_content(data.content, max_length)
        self._require_order(conversation_id)

        created_at = utcnow()
        latest = ensure_utc(
            self.db.query(func.max(ChatMessage.created_at))
            .filter(ChatMessage.order_id == conversation_id)
            .scalar()
        )
        if latest is not None and created_at <= latest:
            created_at = latest + TIE_BREAK

        message = ChatMessage(
            order_id=conversation_id,
            sender_role=SenderRole(data.sender_role).value,
            sender_id=data.sender_id,
            sender_name=data.sender_name,
            content=content,
            is_read=False,
            notification_sent=False,
            created_at=created_at,
        )
        self.db.add(message)
        self.db.commit()
        self.db.refresh(message)
        return message

    def get_message(self, message_id: UUID) -> Optional[ChatMessage]:
        return self.db.query(ChatMessage).filter(ChatMessage.id == message_id).first()

    def list_messages(self, conversation_id: str) -> List[ChatMessage]:
        self._require_order(conversation_id)
        return (
            self.db.query(ChatMessage)
            .filter(ChatMessage.order_id == conversation_id)
            .order_by(ChatMessage.created_at.asc())
            .all()
        )

    def get_messages_query(self, conversation_id: str) -> Select:
        """Select for paginated listing, ascending."""
        return (
            select(ChatMessage)
            .where(ChatMessage.order_id == conversation_id)
            .order_by(ChatMessage.created_at.asc())
        )

    def mark_read(self, message_id: UUID, reader: Principal) -> ChatMessage:
        """
        Mark one message read by ``reader``. Own messages, system messages,
        already-read messages and readers who are not a participant of the
        order (admins) leave the message unchanged.
        """
        message = self.get_message(message_id)
        if message is None:
            raise NotFoundError(f"Message {message_id} not found")
        if (
            message.is_read
            or message.sender_id == reader.id
            or message.sender_role == SenderRole.SYSTEM.value
            or not OrderService(self.db).is_participant(message.order, reader)
        ):
            return message
        message.is_read = True
        message.read_at = utcnow()
        self.db.commit()
        self.db.refresh(message)
        return message

    def mark_conversation_read(
        self, conversation_id: str, reader: Principal
    ) -> List[ChatMessage]:
        """Mark every inbound unread message read; returns the ones that changed, oldest first."""
        order = self.db.query(Order).filter(Order.id == conversation_id).first()
        if order is None:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        if not OrderService(self.db).is_participant(order, reader):
            return []
        pending = (
            self.db.query(ChatMessage)
            .filter(
                ChatMessage.order_id == conversation_id,
                ChatMessage.is_read.is_(False),
                ChatMessage.sender_id != reader.id,
                ChatMessage.sender_role != SenderRole.SYSTEM.value,
            )
            .order_by(ChatMessage.created_at.asc())
            .all()
        )
        now = utcnow()
        for message in pending:
            message.is_read = True
            message.read_at = now
        if pending:
            self.db.commit()
        return pending

    def get_pending_notification_messages(
        self, conversation_id: str, sender_id: str
    ) -> List[ChatMessage]:
        """Sender's messages the recipient has neither read nor been emailed about."""
        return (
            self.db.query(ChatMessage)
            .filter(
                ChatMessage.order_id == conversation_id,
                ChatMessage.sender_id == sender_id,
                ChatMessage.is_read.is_(False),
                ChatMessage.notification_sent.is_(False),
            )
            .order_by(ChatMessage.created_at.asc())
            .all()
        )

    def mark_notification_sent(self, messages: Iterable[ChatMessage]) -> None:
        changed = False
        for message in messages:
            if not message.notification_sent:
                message.notification_sent = True
                changed = True
        if changed:
            self.db.commit()

    def last_messages(self, conversation_ids: Iterable[str]) -> Dict[str, ChatMessage]:
        """Most recent message per conversation."""
        ids = list(conversation_ids)
        if not ids:
            return {}
        latest = (
            select(
                ChatMessage.order_id.label("order_id"),
                func.max(ChatMessage.created_at).label("created_at"),
            )
            .where(ChatMessage.order_id.in_(ids))
            .group_by(ChatMessage.order_id)
            .subquery()
        )
        rows = (
            self.db.query(ChatMessage)
            .join(
                latest,
                (ChatMessage.order_id == latest.c.order_id)
                & (ChatMessage.created_at == latest.c.created_at),
            )
            .all()
        )
        return {row.order_id: row for row in rows}


class DatabaseMessageStore:
    """
    Message store used by live sessions on behalf of one viewer. Each call
    runs in its own database session since a live session outlives any
    single request.
    """

    def __init__(
        self,
        session_scope: Callable[[], AbstractContextManager[Session]],
        viewer: Principal,
        transport: Optional[PubSubTransport] = None,
    ) -> None:
        self._session_scope = session_scope
        self._viewer = viewer
        self._transport = transport

    def list_messages(self, conversation_id: str) -> List[MessageRead]:
        with self._session_scope() as db:
            rows = ChatMessageService(db).list_messages(conversation_id)
            return [MessageRead.model_validate(row) for row in rows]

    def mark_read(self, message_id: UUID, reader_id: str) -> MessageRead:
        if reader_id != self._viewer.id:
            raise UnauthorizedError("Store only marks messages for its own viewer")
        with self._session_scope() as db:
            service = ChatMessageService(db)
            before = service.get_message(message_id)
            was_read = before.is_read if before is not None else False
            message = MessageRead.model_validate(service.mark_read(message_id, self._viewer))
        if self._transport is not None and message.is_read and not was_read:
            publish_updated(self._transport, [message])
        return message
