"""Tests for SendMessageCommand."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from app.commands.send_message_command import SendMessageCommand
from app.core.cooldown import NotificationDirection
from app.exceptions import MessageValidationError, NotFoundError
from app.realtime.base import conversation_channel, user_presence_channel
from app.schemas.chat import SendMessageRequest
from app.services.chat_message_service import ChatMessageService
from app.services.notification_cooldown_service import NotificationCooldownService

T0 = datetime(2026, 7, 1, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def send(db, hub, email_adapter, settings):
    def run(order, principal, content="hello", notify=False, at=None, adapter=email_adapter):
        command = SendMessageCommand(db, hub, adapter, settings)
        body = SendMessageRequest(content=content, notify=notify)
        if at is None:
            return command.execute(order.id, principal, body)
        with patch("app.core.cooldown.utcnow", return_value=at):
            return command.execute(order.id, principal, body)

    return run


def go_online(hub, principal):
    channel = hub.presence_channel(user_presence_channel(principal.id), principal.id)
    channel.track()
    return channel


def test_first_message_to_offline_expert_emails(send, setup_order, customer, expert, email_adapter, db):
    result = send(setup_order, customer, "need help")
    assert result.success is True
    assert result.email_sent is True
    assert result.email_error is None
    assert result.message.content == "need help"
    assert result.message.notification_sent is True

    [email] = email_adapter.sent
    assert email.to == expert.email
    assert email.sender_name == customer.name
    assert email.recipient_name == expert.name
    assert email.message_preview == "need help"
    assert email.conversation_url.endswith(f"/conversations/{setup_order.id}")

    cooldown = NotificationCooldownService(db).get_cooldown(
        setup_order.id, NotificationDirection.CUSTOMER_TO_EXPERT
    )
    assert cooldown.last_notified_by == customer.id


def test_three_quick_messages_send_one_email(send, setup_order, customer, email_adapter):
    results = [
        send(setup_order, customer, f"m{i}", at=T0 + timedelta(minutes=i * 4))
        for i in range(3)
    ]
    assert [r.email_sent for r in results] == [True, False, False]
    assert results[-1].queued_unnotified_count == 2
    assert results[-1].cooldown_remaining_seconds == 52 * 60
    assert len(email_adapter.sent) == 1


def test_second_email_after_cooldown(send, setup_order, customer, email_adapter):
    send(setup_order, customer, "first", at=T0)
    second = send(setup_order, customer, "second", at=T0 + timedelta(minutes=65))
    assert second.email_sent is True
    assert len(email_adapter.sent) == 2


def test_recipient_online_mid_cooldown_resets_queue(
    send, setup_order, customer, expert, hub, email_adapter
):
    send(setup_order, customer, "one", at=T0)
    queued = send(setup_order, customer, "two", at=T0 + timedelta(minutes=1))
    assert queued.queued_unnotified_count == 1

    go_online(hub, expert)
    third = send(setup_order, customer, "three", at=T0 + timedelta(minutes=2))
    assert third.email_sent is False
    assert third.queued_unnotified_count == 0
    assert len(email_adapter.sent) == 1


def test_online_recipient_never_emailed(send, setup_order, customer, expert, hub, email_adapter):
    go_online(hub, expert)
    for i in range(3):
        result = send(setup_order, customer, f"m{i}")
        assert result.email_sent is False
        assert result.queued_unnotified_count == 0
    assert email_adapter.sent == []


def test_expert_reply_notifies_customer(send, setup_order, customer, expert, email_adapter):
    result = send(setup_order, expert, "here is the answer")
    assert result.email_sent is True
    assert email_adapter.sent[0].to == customer.email


def test_delivery_failure_is_a_warning(send, setup_order, customer, email_adapter, db):
    email_adapter.fail = True
    result = send(setup_order, customer, "still saved", at=T0)
    assert result.success is True
    assert result.email_sent is False
    assert result.email_error == "provider down"
    assert result.message.notification_sent is False
    assert len(ChatMessageService(db).list_messages(setup_order.id)) == 1

    # the attempt consumed the window
    email_adapter.fail = False
    again = send(setup_order, customer, "next", at=T0 + timedelta(minutes=5))
    assert again.email_sent is False
    assert again.queued_unnotified_count == 1


def test_email_disabled_still_applies_cooldown(send, setup_order, customer):
    result = send(setup_order, customer, "hi", adapter=None)
    assert result.success is True
    assert result.email_sent is False
    assert result.email_error is None


def test_message_is_broadcast(send, setup_order, customer, hub):
    inserted = []
    hub.subscribe(conversation_channel(setup_order.id), on_insert=inserted.append)
    result = send(setup_order, customer, "live")
    assert [p["id"] for p in inserted] == [str(result.message.id)]


def test_broadcast_failure_does_not_fail_send(send, setup_order, customer, hub):
    hub.disconnect()
    result = send(setup_order, customer, "offline transport")
    assert result.success is True
    assert result.message is not None


def test_validation_happens_before_lookup(send, customer):
    class Missing:
        id = "does-not-exist"

    with pytest.raises(MessageValidationError):
        send(Missing(), customer, "   ")
    with pytest.raises(NotFoundError):
        send(Missing(), customer, "hello")


def test_outsider_cannot_send(send, setup_order, outsider, db):
    with pytest.raises(NotFoundError):
        send(setup_order, outsider, "let me in")
    assert ChatMessageService(db).list_messages(setup_order.id) == []


def test_admin_posts_system_message_without_notification(send, setup_order, admin, email_adapter):
    result = send(setup_order, admin, "order reassigned")
    assert result.message.sender_role == "system"
    assert result.email_sent is False
    assert email_adapter.sent == []
