"""Conversation list: visible orders annotated with chat metadata and grouped by stage."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from app.core.classifier import classify, closed_at, group_conversations, is_terminal
from app.core.unread import UnreadAggregator
from app.schemas.chat import LastMessagePreview
from app.schemas.conversation import ConversationList, ConversationSummary
from app.schemas.principal import Principal
from app.services.chat_message_service import ChatMessageService
from app.services.order_service import OrderService
from app.utils.dates import utcnow


class ConversationService:
    def __init__(self, db: Session, closing_window: timedelta) -> None:
        self.db = db
        self.closing_window = closing_window
        self.order_service = OrderService(db)
        self.message_service = ChatMessageService(db)
        self.unread = UnreadAggregator(db)

    def list_for_principal(
        self, principal: Principal, now: Optional[datetime] = None
    ) -> ConversationList:
        now = now or utcnow()
        orders = self.order_service.visible_orders(principal)
        ids = [order.id for order in orders]
        last_messages = self.message_service.last_messages(ids)
        unread_counts = self.unread.counts_for(ids, principal.id)

        summaries = []
        for order in orders:
            last = last_messages.get(order.id)
            stage = classify(
                order,
                last is not None,
                now=now,
                closing_window=self.closing_window,
            )
            if stage is None:
                continue
            summaries.append(
                ConversationSummary(
                    id=order.id,
                    title=order.title,
                    task_code=order.task_code,
                    status=order.status,
                    stage=stage.value,
                    customer_id=order.customer_id,
                    customer_name=order.customer_name,
                    expert_id=order.expert_id,
                    expert_name=order.expert_name,
                    created_at=order.created_at,
                    updated_at=order.updated_at,
                    closed_at=closed_at(order) if is_terminal(order.status) else None,
                    last_message=(
                        LastMessagePreview(
                            sender_id=last.sender_id,
                            content=last.content,
                            created_at=last.created_at,
                        )
                        if last is not None
                        else None
                    ),
                    unread_count=unread_counts.get(order.id, 0),
                )
            )
        return group_conversations(summaries)
