"""
Email notification contract.

The chat core decides whether to notify; adapters only deliver this flat payload.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class EmailNotification(BaseModel):
    to: str
    subject: str
    recipient_name: str
    sender_name: str
    message_preview: str
    conversation_url: str


class EmailSendResult(BaseModel):
    """Result of handing an email to the provider (success + optional id)."""

    success: bool
    provider_message_id: Optional[str] = None
