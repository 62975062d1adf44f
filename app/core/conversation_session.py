"""
Live session for one viewer in one conversation.

A session owns the presence subscription for the counterpart, the viewer's
own presence on their user channel, the conversation's message subscription
and a read-receipt reconciler. Everything it owns is torn down by
``close()``, and the manager closes the current session before opening the
next one.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from app.core.presence import Dispatch, PresenceState, PresenceTracker
from app.core.read_receipts import MessageStore, ReadReceiptReconciler
from app.exceptions import TransportDisconnect
from app.realtime.base import (
    PresenceChannel,
    PubSubTransport,
    Subscription,
    conversation_channel,
    user_presence_channel,
)
from app.schemas.chat import MessageRead

logger = logging.getLogger(__name__)

EventSink = Callable[[str, dict[str, Any]], None]

MESSAGE_CREATED = "message.created"
MESSAGE_UPDATED = "message.updated"
PRESENCE_CHANGED = "presence.changed"
UNREAD_CHANGED = "unread.changed"


def _call_now(fn: Callable[[], None]) -> None:
    fn()


def presence_payload(state: PresenceState) -> dict[str, Any]:
    return {
        "other_user_online": state.other_user_online,
        "other_user_last_seen": (
            state.other_user_last_seen.isoformat() if state.other_user_last_seen else None
        ),
    }


class ConversationSession:
    def __init__(
        self,
        transport: PubSubTransport,
        store: MessageStore,
        viewer_id: str,
        conversation_id: str,
        other_id: Optional[str],
        dispatch: Optional[Dispatch] = None,
        on_event: Optional[EventSink] = None,
        max_resubscribe_attempts: int = 3,
        read_only: bool = False,
    ) -> None:
        self.transport = transport
        self.viewer_id = viewer_id
        self.conversation_id = conversation_id
        self.other_id = other_id
        self._dispatch = dispatch or _call_now
        self._on_event = on_event
        self._closed = False
        self._last_unread: Optional[int] = None
        self._messages_sub: Optional[Subscription] = None
        self._own_presence: Optional[PresenceChannel] = None
        self.presence = PresenceTracker(
            transport,
            dispatch=self._dispatch,
            on_change=self._presence_changed,
            max_resubscribe_attempts=max_resubscribe_attempts,
        )
        self.reconciler = ReadReceiptReconciler(
            store,
            viewer_id,
            on_change=self._messages_changed,
            read_only=read_only,
        )

    @property
    def messages(self) -> list[MessageRead]:
        return self.reconciler.messages

    @property
    def unread_count(self) -> int:
        return self.reconciler.unread_count

    @property
    def closed(self) -> bool:
        return self._closed

    def open(self) -> list[MessageRead]:
        """
        Subscribe and load the log. The message channel is joined before the
        fetch so nothing inserted in between is missed; duplicates merge by id.
        """
        if self._closed:
            raise RuntimeError("Session already closed")
        self.presence.subscribe(self.conversation_id, self.viewer_id, self.other_id)
        self._track_self()
        try:
            self._messages_sub = self.transport.subscribe(
                conversation_channel(self.conversation_id),
                on_insert=self._guard(self._handle_insert),
                on_update=self._guard(self._handle_update),
            )
        except TransportDisconnect:
            logger.warning(
                "Message channel for %s unavailable; relying on refetch",
                self.conversation_id,
            )
        return self.reconciler.on_conversation_opened(self.conversation_id)

    def refresh(self) -> list[MessageRead]:
        """Refetch the log; also retries presence after a transport drop."""
        if not self.presence.is_subscribed and self.other_id:
            self.presence.resubscribe()
        if self._own_presence is None:
            self._track_self()
        return self.reconciler.on_conversation_opened(self.conversation_id)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._messages_sub is not None:
            self._messages_sub.unsubscribe()
            self._messages_sub = None
        self.presence.close()
        if self._own_presence is not None:
            try:
                self._own_presence.unsubscribe()
            except TransportDisconnect:
                logger.debug("Own presence channel already gone")
            self._own_presence = None

    def _track_self(self) -> None:
        try:
            channel = self.transport.presence_channel(
                user_presence_channel(self.viewer_id), self.viewer_id
            )
            channel.on_disconnect = self._guard(self._own_presence_dropped)
            channel.track()
        except TransportDisconnect:
            logger.warning("Could not announce presence for %s", self.viewer_id)
            return
        self._own_presence = channel

    def _own_presence_dropped(self) -> None:
        self._own_presence = None

    def _guard(self, handler: Callable[..., None]) -> Callable[..., None]:
        def wrapped(*args) -> None:
            def run() -> None:
                if not self._closed:
                    handler(*args)

            self._dispatch(run)

        return wrapped

    def _handle_insert(self, payload: dict[str, Any]) -> None:
        message = MessageRead.model_validate(payload)
        self._emit(MESSAGE_CREATED, message.model_dump(mode="json"))
        self.reconciler.on_message_received(message)

    def _handle_update(self, payload: dict[str, Any]) -> None:
        message = MessageRead.model_validate(payload)
        self.reconciler.on_message_updated(message)
        current = next((m for m in self.reconciler.messages if m.id == message.id), message)
        self._emit(MESSAGE_UPDATED, current.model_dump(mode="json"))

    def _presence_changed(self, state: PresenceState) -> None:
        if not self._closed:
            self._emit(PRESENCE_CHANGED, presence_payload(state))

    def _messages_changed(self, messages: list[MessageRead]) -> None:
        count = self.reconciler.unread_count
        if count != self._last_unread:
            self._last_unread = count
            self._emit(UNREAD_CHANGED, {"unread_count": count})

    def _emit(self, event: str, data: dict[str, Any]) -> None:
        if self._on_event is not None and not self._closed:
            self._on_event(event, data)


class ChatSessionManager:
    """At most one open session per viewer; switching closes the old one first."""

    def __init__(
        self,
        transport: PubSubTransport,
        store: MessageStore,
        dispatch: Optional[Dispatch] = None,
        on_event: Optional[EventSink] = None,
        max_resubscribe_attempts: int = 3,
    ) -> None:
        self.transport = transport
        self.store = store
        self.dispatch = dispatch
        self.on_event = on_event
        self.max_resubscribe_attempts = max_resubscribe_attempts
        self._current: Optional[ConversationSession] = None

    @property
    def current(self) -> Optional[ConversationSession]:
        return self._current

    def open(
        self,
        conversation_id: str,
        viewer_id: str,
        other_id: Optional[str],
        read_only: bool = False,
    ) -> ConversationSession:
        self.close()
        session = ConversationSession(
            self.transport,
            self.store,
            viewer_id,
            conversation_id,
            other_id,
            dispatch=self.dispatch,
            on_event=self.on_event,
            max_resubscribe_attempts=self.max_resubscribe_attempts,
            read_only=read_only,
        )
        try:
            session.open()
        except Exception:
            session.close()
            raise
        self._current = session
        return session

    def close(self) -> None:
        session, self._current = self._current, None
        if session is not None:
            session.close()
