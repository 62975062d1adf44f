"""Tests for ReadReceiptReconciler."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from app.core.read_receipts import ReadReceiptReconciler
from app.exceptions import NotFoundError
from app.schemas.chat import MessageRead, SenderRole

T0 = datetime(2026, 4, 1, 9, 0, tzinfo=timezone.utc)


def make(sender_id, minutes, is_read=False, role=SenderRole.CUSTOMER, id=None):
    return MessageRead(
        id=id or uuid.uuid4(),
        conversation_id="ORD-1",
        sender_role=role,
        sender_id=sender_id,
        content=f"at {minutes}",
        is_read=is_read,
        created_at=T0 + timedelta(minutes=minutes),
    )


class FakeStore:
    def __init__(self, messages=()):
        self.messages = {m.id: m for m in messages}
        self.marked = []
        self.reject = False

    def list_messages(self, conversation_id):
        return sorted(self.messages.values(), key=lambda m: m.created_at)

    def mark_read(self, message_id, reader_id):
        self.marked.append(message_id)
        if self.reject:
            raise NotFoundError("gone")
        updated = self.messages[message_id].model_copy(
            update={"is_read": True, "read_at": T0}
        )
        self.messages[message_id] = updated
        return updated


def test_open_marks_inbound_unread_in_ascending_order():
    later = make("customer", 5)
    earlier = make("customer", 1)
    own = make("expert", 3, role=SenderRole.EXPERT)
    already = make("customer", 0, is_read=True)
    store = FakeStore([later, own, earlier, already])
    reconciler = ReadReceiptReconciler(store, "expert")

    messages = reconciler.on_conversation_opened("ORD-1")

    assert store.marked == [earlier.id, later.id]
    assert [m.id for m in messages] == [already.id, earlier.id, own.id, later.id]
    assert reconciler.unread_count == 0
    assert next(m for m in messages if m.id == own.id).is_read is False


def test_system_messages_are_never_marked():
    system = make("admin", 1, role=SenderRole.SYSTEM)
    store = FakeStore([system])
    reconciler = ReadReceiptReconciler(store, "expert")
    reconciler.on_conversation_opened("ORD-1")
    assert store.marked == []
    assert reconciler.unread_count == 0


def test_received_inbound_message_is_marked_read():
    store = FakeStore()
    reconciler = ReadReceiptReconciler(store, "expert")
    reconciler.on_conversation_opened("ORD-1")

    incoming = make("customer", 1)
    store.messages[incoming.id] = incoming
    reconciler.on_message_received(incoming)

    assert store.marked == [incoming.id]
    assert reconciler.messages[0].is_read is True


def test_received_own_message_is_not_marked():
    store = FakeStore()
    reconciler = ReadReceiptReconciler(store, "customer")
    own = make("customer", 1)
    reconciler.on_message_received(own)
    assert store.marked == []
    assert reconciler.messages[0].is_read is False


def test_store_rejection_keeps_optimistic_read():
    store = FakeStore()
    store.reject = True
    reconciler = ReadReceiptReconciler(store, "expert")
    incoming = make("customer", 1)
    reconciler.on_message_received(incoming)
    assert reconciler.messages[0].is_read is True
    assert reconciler.unread_count == 0


def test_merge_deduplicates_by_id_and_never_regresses_read():
    store = FakeStore()
    reconciler = ReadReceiptReconciler(store, "expert")
    message = make("customer", 1)
    reconciler.on_message_received(message)
    assert reconciler.messages[0].is_read is True

    # a stale copy from an earlier refetch arrives late
    reconciler.merge([message, message])
    assert len(reconciler.messages) == 1
    assert reconciler.messages[0].is_read is True

    reconciler.on_message_updated(message.model_copy(update={"content": "edited"}))
    assert reconciler.messages[0].content == "edited"
    assert reconciler.messages[0].is_read is True


def test_live_event_and_refetch_race():
    first = make("customer", 1)
    store = FakeStore([first])
    reconciler = ReadReceiptReconciler(store, "expert")

    second = make("customer", 2)
    reconciler.on_message_received(second)
    store.messages[second.id] = second.model_copy(update={"is_read": True})
    reconciler.on_conversation_opened("ORD-1")

    ids = [m.id for m in reconciler.messages]
    assert ids == [first.id, second.id]
    assert all(m.is_read for m in reconciler.messages)


def test_on_change_reports_message_list():
    changes = []
    store = FakeStore([make("customer", 1)])
    reconciler = ReadReceiptReconciler(store, "expert", on_change=changes.append)
    reconciler.on_conversation_opened("ORD-1")
    assert changes
    assert changes[-1][0].is_read is True


def test_opening_another_conversation_drops_previous_messages():
    store = FakeStore([make("customer", 1)])
    reconciler = ReadReceiptReconciler(store, "expert")
    reconciler.on_conversation_opened("ORD-1")
    store.messages = {}
    assert reconciler.on_conversation_opened("ORD-2") == []


@pytest.mark.parametrize("viewer", ["expert", "customer"])
def test_unread_count_matches_inbound_unread(viewer):
    reconciler = ReadReceiptReconciler(FakeStore(), viewer)
    reconciler.merge(
        [
            make("customer", 1),
            make("customer", 2),
            make("expert", 3, role=SenderRole.EXPERT),
        ]
    )
    assert reconciler.unread_count == (2 if viewer == "expert" else 1)


def test_read_only_reconciler_never_marks():
    inbound = make("customer", 1)
    reply = make("expert", 2, role=SenderRole.EXPERT)
    store = FakeStore([inbound, reply])
    reconciler = ReadReceiptReconciler(store, "admin", read_only=True)

    messages = reconciler.on_conversation_opened("ORD-1")
    reconciler.on_message_received(make("customer", 3))

    assert store.marked == []
    assert [m.is_read for m in messages] == [False, False]
    assert all(not m.is_read for m in reconciler.messages)
