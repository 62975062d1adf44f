"""Tests for LocalBroadcastHub."""

import pytest

from app.exceptions import TransportDisconnect
from app.realtime.base import conversation_channel, user_presence_channel


def test_channel_names():
    assert user_presence_channel("u1") == "presence-user-u1"
    assert conversation_channel("ORD-1") == "conversation-ORD-1-messages"


def test_publish_reaches_subscribers_until_unsubscribed(hub):
    inserts, updates = [], []
    sub = hub.subscribe("c", on_insert=inserts.append, on_update=updates.append)
    hub.publish_insert("c", {"id": 1})
    hub.publish_update("c", {"id": 1, "is_read": True})
    hub.publish_insert("other", {"id": 2})
    assert inserts == [{"id": 1}]
    assert updates == [{"id": 1, "is_read": True}]

    sub.unsubscribe()
    hub.publish_insert("c", {"id": 3})
    assert inserts == [{"id": 1}]


def test_presence_join_leave_and_sync(hub):
    events = []
    watcher = hub.presence_channel("presence-user-b", "a")
    watcher.on_sync = lambda members: events.append(("sync", members))
    watcher.on_join = lambda key: events.append(("join", key))
    watcher.on_leave = lambda key: events.append(("leave", key))
    watcher.subscribe()

    b = hub.presence_channel("presence-user-b", "b")
    b.track()
    b.unsubscribe()

    assert events == [("sync", set()), ("join", "b"), ("leave", "b")]
    assert hub.last_seen("presence-user-b", "b") is not None


def test_presence_is_refcounted_per_key(hub):
    joins, leaves = [], []
    watcher = hub.presence_channel("p", "a")
    watcher.on_join = joins.append
    watcher.on_leave = leaves.append
    watcher.subscribe()

    tab1 = hub.presence_channel("p", "b")
    tab2 = hub.presence_channel("p", "b")
    tab1.track()
    tab2.track()
    assert joins == ["b"]

    tab1.unsubscribe()
    assert leaves == []
    assert hub.presence_members("p") == {"b"}
    tab2.unsubscribe()
    assert leaves == ["b"]
    assert hub.presence_members("p") == set()


def test_subscribe_syncs_existing_members(hub):
    hub.presence_channel("p", "b").track()
    seen = []
    watcher = hub.presence_channel("p", "a")
    watcher.on_sync = seen.append
    watcher.subscribe()
    assert seen == [{"b"}]


def test_disconnect_notifies_and_refuses_until_reconnect(hub):
    dropped = []
    watcher = hub.presence_channel("p", "a")
    watcher.on_disconnect = lambda: dropped.append(True)
    watcher.subscribe()
    hub.presence_channel("p", "b").track()

    hub.disconnect()
    assert dropped == [True]
    assert hub.connected is False
    with pytest.raises(TransportDisconnect):
        hub.presence_channel("p", "a")
    with pytest.raises(TransportDisconnect):
        hub.publish_insert("c", {})

    hub.reconnect()
    assert hub.presence_members("p") == set()
    assert hub.last_seen("p", "b") is not None
