"""Order schemas; orders are owned by the portal store and read by the chat core."""

from __future__ import annotations

from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "Pending"
    ASSIGNED = "Assigned"
    REVISION = "Revision"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    REFUNDED = "Refunded"


TERMINAL_ORDER_STATUSES = frozenset(
    {OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}
)

