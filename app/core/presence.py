"""
Presence tracking for the counterpart of an open conversation.

A tracker observes ``presence-user-{other_id}`` and exposes whether the other
participant is connected. State starts offline and is reset to offline
synchronously whenever the subscription changes, so nothing from a previous
conversation can leak into the next one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Optional

from app.exceptions import TransportDisconnect
from app.realtime.base import PresenceChannel, PubSubTransport, user_presence_channel
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)

Dispatch = Callable[[Callable[[], None]], None]


def _call_now(fn: Callable[[], None]) -> None:
    fn()


@dataclass(frozen=True)
class PresenceState:
    other_user_online: bool = False
    other_user_last_seen: Optional[datetime] = None


def lookup_presence(transport: PubSubTransport, other_id: Optional[str]) -> PresenceState:
    """One-shot view of a user's presence. Unknown user or dropped transport reads as offline."""
    if not other_id:
        return PresenceState()
    channel_key = user_presence_channel(other_id)
    try:
        online = other_id in transport.presence_members(channel_key)
    except TransportDisconnect:
        logger.warning("Presence lookup for %s failed: transport disconnected", other_id)
        return PresenceState()
    last_seen = None if online else transport.last_seen(channel_key, other_id)
    return PresenceState(other_user_online=online, other_user_last_seen=last_seen)


class PresenceTracker:
    """
    Tracks one counterpart at a time.

    Event handlers are marshalled through ``dispatch`` (direct call by
    default) and ignored once their subscription has been replaced.
    """

    def __init__(
        self,
        transport: PubSubTransport,
        dispatch: Optional[Dispatch] = None,
        on_change: Optional[Callable[[PresenceState], None]] = None,
        max_resubscribe_attempts: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._transport = transport
        self._dispatch = dispatch or _call_now
        self._on_change = on_change
        self._max_resubscribe_attempts = max_resubscribe_attempts
        self._clock = clock
        self._state = PresenceState()
        self._generation = 0
        self._channel: Optional[PresenceChannel] = None
        self._self_id: Optional[str] = None
        self._other_id: Optional[str] = None
        self._conversation_id: Optional[str] = None
        self._token: Optional[object] = None

    @property
    def state(self) -> PresenceState:
        return self._state

    @property
    def other_id(self) -> Optional[str]:
        return self._other_id

    @property
    def is_subscribed(self) -> bool:
        return self._channel is not None

    def subscribe(
        self, conversation_id: str, self_id: str, other_id: Optional[str]
    ) -> Callable[[], None]:
        """Switch to a conversation. Returns an unsubscribe callable for this subscription only."""
        self._teardown()
        self._conversation_id = conversation_id
        self._self_id = self_id
        self._other_id = other_id
        self._set_state(PresenceState())
        token = self._token = object()

        if other_id:
            try:
                self._open()
            except TransportDisconnect:
                logger.warning(
                    "Presence subscribe for conversation %s failed, retrying",
                    conversation_id,
                )
                self.resubscribe()

        def unsubscribe() -> None:
            if self._token is token:
                self.close()

        return unsubscribe

    def resubscribe(self) -> bool:
        """Reopen the current subscription; bounded attempts, offline meanwhile."""
        if not self._other_id:
            return False
        for attempt in range(1, self._max_resubscribe_attempts + 1):
            self._teardown()
            try:
                self._open()
            except TransportDisconnect:
                logger.warning(
                    "Presence resubscribe attempt %d/%d for %s failed",
                    attempt,
                    self._max_resubscribe_attempts,
                    self._other_id,
                )
                continue
            return True
        logger.error(
            "Giving up presence resubscribe for conversation %s", self._conversation_id
        )
        return False

    def close(self) -> None:
        self._teardown()
        self._token = None
        self._conversation_id = None
        self._self_id = None
        self._other_id = None
        self._set_state(PresenceState())

    def _open(self) -> None:
        generation = self._generation
        channel = self._transport.presence_channel(
            user_presence_channel(self._other_id), self._self_id
        )
        channel.on_sync = self._guard(generation, self._handle_sync)
        channel.on_join = self._guard(generation, self._handle_join)
        channel.on_leave = self._guard(generation, self._handle_leave)
        channel.on_disconnect = self._guard(generation, self._handle_disconnect)
        self._channel = channel
        channel.subscribe()

    def _teardown(self) -> None:
        self._generation += 1
        channel, self._channel = self._channel, None
        if channel is None:
            return
        try:
            channel.unsubscribe()
        except TransportDisconnect:
            logger.debug("Presence channel already gone on teardown")
        if self._state.other_user_online:
            self._set_state(replace(self._state, other_user_online=False))

    def _guard(self, generation: int, handler: Callable[..., None]) -> Callable[..., None]:
        def wrapped(*args) -> None:
            def run() -> None:
                if generation != self._generation:
                    return
                handler(*args)

            self._dispatch(run)

        return wrapped

    def _handle_sync(self, members: set[str]) -> None:
        online = self._other_id in members
        if online != self._state.other_user_online:
            self._set_state(replace(self._state, other_user_online=online))

    def _handle_join(self, key: str) -> None:
        if key == self._other_id:
            self._set_state(replace(self._state, other_user_online=True))

    def _handle_leave(self, key: str) -> None:
        if key == self._other_id:
            self._set_state(
                PresenceState(other_user_online=False, other_user_last_seen=self._clock())
            )

    def _handle_disconnect(self) -> None:
        logger.warning(
            "Presence transport dropped for conversation %s", self._conversation_id
        )
        self._channel = None
        self._set_state(replace(self._state, other_user_online=False))
        self.resubscribe()

    def _set_state(self, state: PresenceState) -> None:
        if state == self._state:
            return
        self._state = state
        if self._on_change is not None:
            self._on_change(state)
