"""
Error taxonomy for the chat core.

Storage and auth failures abort the caller's action. Delivery and transport
failures are degraded: the message stays persisted and the caller gets a
warning instead of an error.
"""

from __future__ import annotations

from typing import Optional


class ChatError(Exception):
    """Base class for chat core errors."""

    status_code: int = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class UnauthorizedError(ChatError):
    """Missing, invalid or expired bearer token."""

    status_code = 401


class NotFoundError(ChatError):
    """Conversation, order or message does not exist (or is not visible)."""

    status_code = 404


class MessageValidationError(ChatError):
    """Message content is empty or exceeds the configured length."""

    status_code = 422


class DeliveryFailure(ChatError):
    """Email dispatch failed. Never blocks message persistence."""

    status_code = 502

    def __init__(self, detail: str, provider_status: Optional[int] = None) -> None:
        super().__init__(detail)
        self.provider_status = provider_status


class TransportDisconnect(ChatError):
    """The publish/subscribe transport dropped or refused a channel."""

    status_code = 503
