"""
Publish/subscribe transport interface.

The chat core only talks to these protocols; any realtime backend (the
in-process hub, a hosted broadcast service) can sit behind them.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Optional, Protocol

InsertHandler = Callable[[dict[str, Any]], None]
UpdateHandler = Callable[[dict[str, Any]], None]


def user_presence_channel(user_id: str) -> str:
    """Per-user presence channel; a user tracks itself on its own channel."""
    return f"presence-user-{user_id}"


def conversation_channel(conversation_id: str) -> str:
    """Message insert/update channel for one conversation."""
    return f"conversation-{conversation_id}-messages"


class Subscription(Protocol):
    def unsubscribe(self) -> None: ...


class PresenceChannel(Protocol):
    """
    Handle on a presence channel joined as ``self_key``.

    Handlers are plain attributes assigned before ``subscribe()``.
    """

    channel_key: str
    self_key: str

    on_sync: Optional[Callable[[set[str]], None]]
    on_join: Optional[Callable[[str], None]]
    on_leave: Optional[Callable[[str], None]]
    on_disconnect: Optional[Callable[[], None]]

    def subscribe(self) -> None: ...
    def track(self) -> None: ...
    def untrack(self) -> None: ...
    def unsubscribe(self) -> None: ...


class PubSubTransport(Protocol):
    def subscribe(
        self,
        channel_key: str,
        on_insert: Optional[InsertHandler] = None,
        on_update: Optional[UpdateHandler] = None,
    ) -> Subscription: ...

    def presence_channel(self, channel_key: str, self_key: str) -> PresenceChannel: ...

    def presence_members(self, channel_key: str) -> set[str]: ...

    def last_seen(self, channel_key: str, key: str) -> Optional[datetime]: ...

    def publish_insert(self, channel_key: str, payload: dict[str, Any]) -> None: ...

    def publish_update(self, channel_key: str, payload: dict[str, Any]) -> None: ...
