"""ChatMessage model: append-only conversation log, one row per message."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import relationship

from app.db import Base


class ChatMessage(Base):
    """
    One message in an order's conversation.

    Immutable once written except for is_read/read_at and notification_sent.
    """

    __tablename__ = "chat_messages"

    __table_args__ = (
        Index("ix_chat_messages_order_created", "order_id", "created_at"),
        Index("ix_chat_messages_order_unread", "order_id", "is_read", "sender_id"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(
        String(64),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    sender_role = Column(String(16), nullable=False)  # 'customer' | 'expert' | 'system'
    sender_id = Column(String(255), nullable=False)
    sender_name = Column(String(256), nullable=True)
    content = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    notification_sent = Column(Boolean, nullable=False, default=False)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    order = relationship("Order", back_populates="messages")

    @property
    def conversation_id(self) -> str:
        """Conversations are keyed by order id."""
        return self.order_id
