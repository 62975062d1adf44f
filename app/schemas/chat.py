"""Pydantic schemas for chat messages, send results and notification status."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

# -----------------------------------------------------------------------------
# Messages
# -----------------------------------------------------------------------------


class SenderRole(str, Enum):
    CUSTOMER = "customer"
    EXPERT = "expert"
    SYSTEM = "system"


class MessageCreate(BaseModel):
    """Schema for inserting a message into a conversation log."""

    sender_role: SenderRole
    sender_id: str
    sender_name: Optional[str] = None
    content: str


class MessageRead(BaseModel):
    """Message as stored; also the payload broadcast on the live channel."""

    id: UUID
    conversation_id: str
    sender_role: SenderRole
    sender_id: str
    sender_name: Optional[str] = None
    content: str
    is_read: bool = False
    read_at: Optional[datetime] = None
    notification_sent: bool = False
    created_at: datetime

    model_config = {"from_attributes": True}


class LastMessagePreview(BaseModel):
    sender_id: str
    content: str
    created_at: datetime


# -----------------------------------------------------------------------------
# Send / notify
# -----------------------------------------------------------------------------


class SendMessageRequest(BaseModel):
    """Body for POST /conversations/{order_id}/messages."""

    content: str = Field(..., description="Plain text; trimmed before storage")
    notify: bool = Field(
        False, description="Sender explicitly asked to notify the recipient"
    )


class SendMessageResult(BaseModel):
    success: bool
    message: Optional[MessageRead] = None
    email_sent: bool = False
    email_error: Optional[str] = None
    queued_unnotified_count: int = 0
    cooldown_remaining_seconds: int = 0


class BatchNotificationResult(BaseModel):
    success: bool
    message_count: int = 0
    email_sent: bool = False
    email_error: Optional[str] = None
    error: Optional[str] = None
    cooldown_remaining_seconds: int = 0


class NotificationStatus(BaseModel):
    """Sender-facing cooldown state for one direction of a conversation."""

    conversation_id: str
    direction: str
    last_notified_at: Optional[datetime] = None
    queued_unnotified_count: int = 0
    remaining_seconds: int = 0
    can_notify_now: bool = True


class MarkReadResult(BaseModel):
    marked: int
    unread_count: int


# -----------------------------------------------------------------------------
# Presence
# -----------------------------------------------------------------------------


class PresenceRead(BaseModel):
    conversation_id: str
    other_user_id: Optional[str] = None
    other_user_online: bool = False
    other_user_last_seen: Optional[datetime] = None
