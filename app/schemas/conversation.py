"""Conversation list schemas (one conversation per order)."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from app.schemas.chat import LastMessagePreview


class ConversationSummary(BaseModel):
    """Order annotated with chat metadata for the conversation list."""

    id: str
    title: str
    task_code: Optional[str] = None
    status: str
    stage: str
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    expert_id: Optional[str] = None
    expert_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    closed_at: Optional[datetime] = None
    last_message: Optional[LastMessagePreview] = None
    unread_count: int = 0

    @property
    def last_activity_at(self) -> datetime:
        if self.last_message is not None:
            return self.last_message.created_at
        return self.updated_at


class ConversationList(BaseModel):
    active: list[ConversationSummary] = Field(default_factory=list)
    ready: list[ConversationSummary] = Field(default_factory=list)
    closed: list[ConversationSummary] = Field(default_factory=list)
    total_unread: int = 0
