"""Tests for unread counting."""

from types import SimpleNamespace

from app.core.unread import UnreadAggregator, count_unread, is_unread_for
from app.schemas.chat import SenderRole


def msg(sender_id, is_read=False, role="customer"):
    return SimpleNamespace(sender_id=sender_id, is_read=is_read, sender_role=role)


def test_is_unread_for_ignores_own_read_and_system():
    assert is_unread_for(msg("a"), "b") is True
    assert is_unread_for(msg("b"), "b") is False
    assert is_unread_for(msg("a", is_read=True), "b") is False
    assert is_unread_for(msg("a", role=SenderRole.SYSTEM), "b") is False
    assert is_unread_for(msg("a", role="system"), "b") is False


def test_count_unread():
    messages = [msg("a"), msg("a", is_read=True), msg("b"), msg("a")]
    assert count_unread(messages, "b") == 2
    assert count_unread(messages, "a") == 1


def test_aggregator_counts_per_conversation(db, setup_messages, setup_order, customer, expert):
    unread = UnreadAggregator(db)
    assert unread.count_unread(setup_order.id, expert.id) == 2
    assert unread.count_unread(setup_order.id, customer.id) == 1


def test_aggregator_total_is_sum_of_counts(
    db, make_order, post_message, customer, expert
):
    first = make_order()
    second = make_order()
    third = make_order()
    post_message(first, customer, "one")
    post_message(first, customer, "two")
    post_message(second, customer, "three")
    post_message(second, expert, "reply")

    unread = UnreadAggregator(db)
    ids = [first.id, second.id, third.id]
    counts = unread.counts_for(ids, expert.id)
    assert counts == {first.id: 2, second.id: 1, third.id: 0}
    assert unread.total(ids, expert.id) == sum(counts.values()) == 3


def test_aggregator_excludes_system_messages(db, setup_order, admin, expert, post_message):
    post_message(setup_order, admin, "order updated", role=SenderRole.SYSTEM)
    assert UnreadAggregator(db).count_unread(setup_order.id, expert.id) == 0


def test_counts_for_empty_ids(db):
    assert UnreadAggregator(db).counts_for([], "anyone") == {}
