"""Email payloads for message and batch notifications."""

from __future__ import annotations

from typing import Sequence

from app.config import Settings
from app.models.chat_message import ChatMessage

PREVIEW_CHARS = 500


def conversation_url(settings: Settings, conversation_id: str) -> str:
    return f"{settings.app_url.rstrip('/')}/conversations/{conversation_id}"


def message_subject(sender_name: str) -> str:
    return f"New message from {sender_name}"


def batch_subject(count: int, sender_name: str) -> str:
    plural = "s" if count != 1 else ""
    return f"{count} new message{plural} from {sender_name}"


def truncate(content: str, limit: int = PREVIEW_CHARS) -> str:
    if len(content) <= limit:
        return content
    return content[: limit - 3].rstrip() + "..."


def batch_preview(messages: Sequence[ChatMessage], limit: int) -> str:
    """Up to ``limit`` oldest pending messages, plus a remainder line."""
    lines = [truncate(m.content) for m in messages[:limit]]
    extra = len(messages) - limit
    if extra > 0:
        lines.append(f"...and {extra} more")
    return "\n\n".join(lines)
