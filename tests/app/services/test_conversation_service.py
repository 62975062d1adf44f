"""Tests for ConversationService listing."""

from datetime import datetime, timedelta, timezone

from app.schemas.chat import SenderRole
from app.services.chat_message_service import ChatMessageService
from app.services.conversation_service import ConversationService

WINDOW = timedelta(hours=48)


def test_conversations_grouped_by_stage(db, make_order, post_message, customer, expert):
    now = datetime.now(timezone.utc)
    ready = make_order()
    active = make_order()
    recently_done = make_order(status="Completed", status_changed_at=now - timedelta(hours=47))
    closed = make_order(status="Refunded", status_changed_at=now - timedelta(hours=49))
    make_order(with_expert=False)
    post_message(active, customer, "hello")
    post_message(closed, customer, "too late")

    result = ConversationService(db, WINDOW).list_for_principal(expert, now=now)

    assert [c.id for c in result.ready] == [ready.id]
    assert {c.id for c in result.active} == {active.id, recently_done.id}
    assert [c.id for c in result.closed] == [closed.id]
    assert result.closed[0].closed_at is not None


def test_conversations_carry_unread_and_last_message(
    db, make_order, post_message, customer, expert
):
    first = make_order()
    second = make_order()
    post_message(first, customer, "one")
    post_message(first, customer, "two")
    post_message(second, customer, "three")
    post_message(second, expert, "reply")

    service = ConversationService(db, WINDOW)
    result = service.list_for_principal(expert)
    by_id = {c.id: c for c in result.active}
    assert by_id[first.id].unread_count == 2
    assert by_id[first.id].last_message.content == "two"
    assert by_id[second.id].unread_count == 1
    assert by_id[second.id].last_message.content == "reply"
    assert result.total_unread == 3

    ChatMessageService(db).mark_conversation_read(first.id, expert)
    result = service.list_for_principal(expert)
    assert result.total_unread == sum(c.unread_count for c in result.active) == 1


def test_active_sorted_by_latest_message(db, make_order, post_message, customer):
    older = make_order()
    newer = make_order()
    post_message(newer, customer, "first")
    post_message(older, customer, "second")

    result = ConversationService(db, WINDOW).list_for_principal(customer)
    assert [c.id for c in result.active] == [older.id, newer.id]


def test_system_messages_do_not_count_as_unread(
    db, setup_order, post_message, admin, expert
):
    post_message(setup_order, admin, "order reassigned", role=SenderRole.SYSTEM)
    result = ConversationService(db, WINDOW).list_for_principal(expert)
    assert result.active[0].unread_count == 0
    assert result.total_unread == 0
