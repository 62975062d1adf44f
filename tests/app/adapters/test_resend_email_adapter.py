"""Tests for ResendEmailAdapter."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from app.adapters.email import ResendEmailAdapter, build_email_adapter, render_text
from app.config import get_settings
from app.exceptions import DeliveryFailure
from app.schemas.notification import EmailNotification


@pytest.fixture
def notification():
    return EmailNotification(
        to="expert@example.com",
        subject="New message from Dana",
        recipient_name="Sam",
        sender_name="Dana",
        message_preview="Can you take a look?",
        conversation_url="http://localhost:3000/conversations/ORD-1",
    )


@pytest.fixture
def adapter():
    return ResendEmailAdapter(
        api_key="re_test", sender="Chat <chat@example.com>", api_url="https://resend.test/emails", timeout=5
    )


def response(status_code, payload=None, text=""):
    resp = MagicMock()
    resp.status_code = status_code
    resp.text = text
    resp.json.return_value = payload or {}
    return resp


def test_send_posts_to_resend(adapter, notification):
    with patch("app.adapters.email.requests.post", return_value=response(200, {"id": "em_1"})) as post:
        result = adapter.send(notification)

    assert result.success is True
    assert result.provider_message_id == "em_1"
    args, kwargs = post.call_args
    assert args[0] == "https://resend.test/emails"
    assert kwargs["headers"]["Authorization"] == "Bearer re_test"
    assert kwargs["timeout"] == 5
    assert kwargs["json"]["to"] == ["expert@example.com"]
    assert kwargs["json"]["subject"] == "New message from Dana"
    assert "Can you take a look?" in kwargs["json"]["text"]


def test_provider_error_raises_delivery_failure(adapter, notification):
    with patch("app.adapters.email.requests.post", return_value=response(422, text="bad from")):
        with pytest.raises(DeliveryFailure) as exc:
            adapter.send(notification)
    assert exc.value.provider_status == 422
    assert "bad from" in exc.value.detail


def test_network_error_raises_delivery_failure(adapter, notification):
    with patch(
        "app.adapters.email.requests.post",
        side_effect=requests.ConnectionError("boom"),
    ):
        with pytest.raises(DeliveryFailure):
            adapter.send(notification)


def test_render_text_mentions_everything(notification):
    text = render_text(notification)
    assert "Hi Sam" in text
    assert "Dana sent you a message" in text
    assert notification.conversation_url in text


def test_build_email_adapter_respects_settings():
    settings = get_settings()
    assert build_email_adapter(settings.model_copy(update={"email_enabled": False})) is None
    assert (
        build_email_adapter(
            settings.model_copy(update={"email_enabled": True, "resend_api_key": None})
        )
        is None
    )
    built = build_email_adapter(
        settings.model_copy(update={"email_enabled": True, "resend_api_key": "re_x"})
    )
    assert isinstance(built, ResendEmailAdapter)
