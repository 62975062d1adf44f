"""Unread counts; always recomputed from the store or the reconciled message set."""

from __future__ import annotations

from typing import Any, Iterable

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.chat_message import ChatMessage
from app.schemas.chat import SenderRole


def is_unread_for(message: Any, viewer_id: str) -> bool:
    return (
        not message.is_read
        and message.sender_id != viewer_id
        and message.sender_role != SenderRole.SYSTEM
    )


def count_unread(messages: Iterable[Any], viewer_id: str) -> int:
    return sum(1 for m in messages if is_unread_for(m, viewer_id))


class UnreadAggregator:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _unread_query(self, viewer_id: str):
        return self.db.query(ChatMessage).filter(
            ChatMessage.is_read.is_(False),
            ChatMessage.sender_id != viewer_id,
            ChatMessage.sender_role != SenderRole.SYSTEM.value,
        )

    def count_unread(self, conversation_id: str, viewer_id: str) -> int:
        return (
            self._unread_query(viewer_id)
            .filter(ChatMessage.order_id == conversation_id)
            .count()
        )

    def counts_for(self, conversation_ids: Iterable[str], viewer_id: str) -> dict[str, int]:
        ids = list(conversation_ids)
        if not ids:
            return {}
        rows = (
            self._unread_query(viewer_id)
            .filter(ChatMessage.order_id.in_(ids))
            .with_entities(ChatMessage.order_id, func.count(ChatMessage.id))
            .group_by(ChatMessage.order_id)
            .all()
        )
        counts = {conversation_id: 0 for conversation_id in ids}
        counts.update({order_id: count for order_id, count in rows})
        return counts

    def total(self, conversation_ids: Iterable[str], viewer_id: str) -> int:
        return sum(self.counts_for(conversation_ids, viewer_id).values())
