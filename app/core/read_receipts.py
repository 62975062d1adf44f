"""
Read-receipt reconciliation for one viewer of one conversation.

Inbound messages are flipped to read locally first and then confirmed with
the store. Live events and full refetches are merged by message id, and a
merge never turns a read message back into an unread one.

A read-only reconciler serves observers who are not participants: it loads
and merges but never marks anything read.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional, Protocol
from uuid import UUID

from app.exceptions import ChatError
from app.schemas.chat import MessageRead, SenderRole
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)


class MessageStore(Protocol):
    def list_messages(self, conversation_id: str) -> list[MessageRead]: ...

    def mark_read(self, message_id: UUID, reader_id: str) -> MessageRead: ...


class ReadReceiptReconciler:
    def __init__(
        self,
        store: MessageStore,
        viewer_id: str,
        on_change: Optional[Callable[[list[MessageRead]], None]] = None,
        read_only: bool = False,
    ) -> None:
        self._store = store
        self.viewer_id = viewer_id
        self.read_only = read_only
        self._on_change = on_change
        self._messages: dict[UUID, MessageRead] = {}
        self.conversation_id: Optional[str] = None

    @property
    def messages(self) -> list[MessageRead]:
        """Messages ascending by created_at."""
        return sorted(self._messages.values(), key=lambda m: (m.created_at, str(m.id)))

    @property
    def unread_count(self) -> int:
        return sum(1 for m in self._messages.values() if self._is_inbound_unread(m))

    def on_conversation_opened(self, conversation_id: str) -> list[MessageRead]:
        """Load the log and mark every inbound unread message read, oldest first."""
        if conversation_id != self.conversation_id:
            self._messages.clear()
            self.conversation_id = conversation_id
        self.merge(self._store.list_messages(conversation_id), notify=False)
        for message in self.messages:
            if self._is_inbound_unread(message):
                self._mark_read(message)
        self._changed()
        return self.messages

    def on_message_received(self, message: MessageRead) -> None:
        self.merge([message], notify=False)
        current = self._messages[message.id]
        if self._is_inbound_unread(current):
            self._mark_read(current)
        self._changed()

    def on_message_updated(self, message: MessageRead) -> None:
        self.merge([message])

    def merge(self, incoming: Iterable[MessageRead], notify: bool = True) -> None:
        for message in incoming:
            existing = self._messages.get(message.id)
            if existing is not None and existing.is_read and not message.is_read:
                message = message.model_copy(
                    update={"is_read": True, "read_at": existing.read_at}
                )
            self._messages[message.id] = message
        if notify:
            self._changed()

    def _is_inbound_unread(self, message: MessageRead) -> bool:
        return (
            not message.is_read
            and message.sender_id != self.viewer_id
            and message.sender_role != SenderRole.SYSTEM
        )

    def _mark_read(self, message: MessageRead) -> None:
        if self.read_only:
            return
        self._messages[message.id] = message.model_copy(
            update={"is_read": True, "read_at": utcnow()}
        )
        try:
            confirmed = self._store.mark_read(message.id, self.viewer_id)
        except ChatError as e:
            logger.warning("Store rejected mark-read for %s: %s", message.id, e.detail)
            return
        self.merge([confirmed], notify=False)

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self.messages)
