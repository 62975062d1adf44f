"""
In-process broadcast hub.

Serves message and presence channels to every session in this process
(WebSocket clients attach through the realtime router). Presence is
refcounted per key so a user with two open tabs only leaves when the last
one goes away. Callbacks run outside the hub lock.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Optional

from app.exceptions import TransportDisconnect
from app.realtime.base import InsertHandler, UpdateHandler
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)


class LocalSubscription:
    def __init__(
        self,
        hub: "LocalBroadcastHub",
        channel_key: str,
        on_insert: Optional[InsertHandler],
        on_update: Optional[UpdateHandler],
    ) -> None:
        self.hub = hub
        self.channel_key = channel_key
        self.on_insert = on_insert
        self.on_update = on_update
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self.hub._remove_subscription(self)


class LocalPresenceChannel:
    def __init__(self, hub: "LocalBroadcastHub", channel_key: str, self_key: str) -> None:
        self.hub = hub
        self.channel_key = channel_key
        self.self_key = self_key
        self.on_sync: Optional[Callable[[set[str]], None]] = None
        self.on_join: Optional[Callable[[str], None]] = None
        self.on_leave: Optional[Callable[[str], None]] = None
        self.on_disconnect: Optional[Callable[[], None]] = None
        self.subscribed = False
        self.tracked = False

    def subscribe(self) -> None:
        self.hub._add_listener(self)

    def track(self) -> None:
        if not self.subscribed:
            self.subscribe()
        if not self.tracked:
            self.tracked = True
            self.hub._track(self.channel_key, self.self_key)

    def untrack(self) -> None:
        if self.tracked:
            self.tracked = False
            self.hub._untrack(self.channel_key, self.self_key)

    def unsubscribe(self) -> None:
        self.untrack()
        if self.subscribed:
            self.hub._remove_listener(self)


class LocalBroadcastHub:
    """Thread-safe in-memory implementation of ``PubSubTransport``."""

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._lock = threading.Lock()
        self._clock = clock
        self._connected = True
        self._subscriptions: dict[str, list[LocalSubscription]] = defaultdict(list)
        self._listeners: dict[str, list[LocalPresenceChannel]] = defaultdict(list)
        self._members: dict[str, dict[str, int]] = defaultdict(dict)
        self._last_seen: dict[tuple[str, str], datetime] = {}

    # ------------------------------------------------------------------
    # Message channels
    # ------------------------------------------------------------------

    def subscribe(
        self,
        channel_key: str,
        on_insert: Optional[InsertHandler] = None,
        on_update: Optional[UpdateHandler] = None,
    ) -> LocalSubscription:
        with self._lock:
            self._ensure_connected()
            subscription = LocalSubscription(self, channel_key, on_insert, on_update)
            self._subscriptions[channel_key].append(subscription)
        return subscription

    def publish_insert(self, channel_key: str, payload: dict[str, Any]) -> None:
        for subscription in self._snapshot_subscriptions(channel_key):
            if subscription.active and subscription.on_insert is not None:
                subscription.on_insert(payload)

    def publish_update(self, channel_key: str, payload: dict[str, Any]) -> None:
        for subscription in self._snapshot_subscriptions(channel_key):
            if subscription.active and subscription.on_update is not None:
                subscription.on_update(payload)

    def _snapshot_subscriptions(self, channel_key: str) -> list[LocalSubscription]:
        with self._lock:
            self._ensure_connected()
            return list(self._subscriptions.get(channel_key, ()))

    def _remove_subscription(self, subscription: LocalSubscription) -> None:
        with self._lock:
            subs = self._subscriptions.get(subscription.channel_key)
            if subs and subscription in subs:
                subs.remove(subscription)
                if not subs:
                    del self._subscriptions[subscription.channel_key]

    # ------------------------------------------------------------------
    # Presence channels
    # ------------------------------------------------------------------

    def presence_channel(self, channel_key: str, self_key: str) -> LocalPresenceChannel:
        with self._lock:
            self._ensure_connected()
        return LocalPresenceChannel(self, channel_key, self_key)

    def presence_members(self, channel_key: str) -> set[str]:
        with self._lock:
            self._ensure_connected()
            return set(self._members.get(channel_key, {}))

    def last_seen(self, channel_key: str, key: str) -> Optional[datetime]:
        with self._lock:
            return self._last_seen.get((channel_key, key))

    def _add_listener(self, channel: LocalPresenceChannel) -> None:
        with self._lock:
            self._ensure_connected()
            if not channel.subscribed:
                channel.subscribed = True
                self._listeners[channel.channel_key].append(channel)
            members = set(self._members.get(channel.channel_key, {}))
        if channel.on_sync is not None:
            channel.on_sync(members)

    def _remove_listener(self, channel: LocalPresenceChannel) -> None:
        with self._lock:
            channel.subscribed = False
            listeners = self._listeners.get(channel.channel_key)
            if listeners and channel in listeners:
                listeners.remove(channel)
                if not listeners:
                    del self._listeners[channel.channel_key]

    def _track(self, channel_key: str, key: str) -> None:
        with self._lock:
            self._ensure_connected()
            members = self._members[channel_key]
            members[key] = members.get(key, 0) + 1
            if members[key] > 1:
                return
            listeners = list(self._listeners.get(channel_key, ()))
        logger.debug("Presence join %s on %s", key, channel_key)
        for listener in listeners:
            if listener.on_join is not None:
                listener.on_join(key)

    def _untrack(self, channel_key: str, key: str) -> None:
        with self._lock:
            members = self._members.get(channel_key)
            if not members or key not in members:
                return
            members[key] -= 1
            if members[key] > 0:
                return
            del members[key]
            if not members:
                del self._members[channel_key]
            self._last_seen[(channel_key, key)] = self._clock()
            listeners = list(self._listeners.get(channel_key, ()))
        logger.debug("Presence leave %s on %s", key, channel_key)
        for listener in listeners:
            if listener.on_leave is not None:
                listener.on_leave(key)

    # ------------------------------------------------------------------
    # Connection state
    # ------------------------------------------------------------------

    @property
    def connected(self) -> bool:
        return self._connected

    def disconnect(self) -> None:
        """
        Drop every channel as a lost connection would: listeners get
        ``on_disconnect``, tracked members are forgotten, and new channels
        are refused until ``reconnect()``.
        """
        with self._lock:
            self._connected = False
            now = self._clock()
            for channel_key, members in self._members.items():
                for key in members:
                    self._last_seen[(channel_key, key)] = now
            self._members.clear()
            listeners = [ch for chans in self._listeners.values() for ch in chans]
            self._listeners.clear()
            for subs in self._subscriptions.values():
                for subscription in subs:
                    subscription.active = False
            self._subscriptions.clear()
        logger.warning("Broadcast hub disconnected (%d presence listeners)", len(listeners))
        for listener in listeners:
            listener.subscribed = False
            listener.tracked = False
            if listener.on_disconnect is not None:
                listener.on_disconnect()

    def reconnect(self) -> None:
        with self._lock:
            self._connected = True
        logger.info("Broadcast hub reconnected")

    def _ensure_connected(self) -> None:
        if not self._connected:
            raise TransportDisconnect("Realtime transport is disconnected")
