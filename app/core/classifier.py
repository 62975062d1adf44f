"""
Conversation lifecycle classification.

A pure function of order status, status-change time and whether any message
exists; recomputed on every read.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Iterable, Optional

from app.schemas.conversation import ConversationList, ConversationSummary
from app.schemas.order import TERMINAL_ORDER_STATUSES, OrderStatus
from app.utils.dates import ensure_utc


class ConversationStage(str, Enum):
    ACTIVE = "active"
    READY = "ready"
    CLOSED = "closed"


def is_terminal(status: str) -> bool:
    try:
        return OrderStatus(status) in TERMINAL_ORDER_STATUSES
    except ValueError:
        return False


def closed_at(order: Any) -> Optional[datetime]:
    """When a terminal order closed: status change, else completion, else last update."""
    return ensure_utc(
        getattr(order, "status_changed_at", None)
        or getattr(order, "completed_at", None)
        or getattr(order, "updated_at", None)
    )


def classify(
    order: Any,
    has_messages: bool,
    *,
    now: datetime,
    closing_window: timedelta,
) -> Optional[ConversationStage]:
    """Stage of an order's conversation, or None when it is not listed at all."""
    if not order.expert_id:
        return None
    if is_terminal(order.status):
        ended = closed_at(order)
        if ended is not None and ensure_utc(now) - ended >= closing_window:
            return ConversationStage.CLOSED
        return ConversationStage.ACTIVE
    if has_messages:
        return ConversationStage.ACTIVE
    return ConversationStage.READY


def group_conversations(summaries: Iterable[ConversationSummary]) -> ConversationList:
    """Bucket by stage and apply the per-bucket ordering."""
    result = ConversationList()
    for summary in summaries:
        bucket = getattr(result, ConversationStage(summary.stage).value)
        bucket.append(summary)
        result.total_unread += summary.unread_count
    result.active.sort(key=lambda s: ensure_utc(s.last_activity_at), reverse=True)
    result.ready.sort(key=lambda s: ensure_utc(s.created_at), reverse=True)
    result.closed.sort(key=lambda s: ensure_utc(s.created_at), reverse=True)
    return result
