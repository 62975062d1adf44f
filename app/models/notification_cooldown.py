"""NotificationCooldown model: email cooldown per conversation and direction."""

from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid

from app.db import Base
from app.models.mixins import TimestampMixin


class NotificationCooldown(Base, TimestampMixin):
    """
    Last email time and queued (un-emailed) message count for one direction
    (customer_to_expert / expert_to_customer) of a conversation.
    """

    __tablename__ = "notification_cooldowns"

    __table_args__ = (
        UniqueConstraint(
            "order_id", "direction", name="uq_notification_cooldowns_order_direction"
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(
        String(64),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    direction = Column(String(32), nullable=False)
    last_notified_at = Column(DateTime(timezone=True), nullable=True)
    last_notified_by = Column(String(255), nullable=True)
    queued_unnotified_count = Column(Integer, nullable=False, default=0)
