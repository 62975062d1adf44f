"""Persistence for notification cooldown rows."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.core.cooldown import NotificationCooldownEngine, NotificationDirection
from app.models.notification_cooldown import NotificationCooldown
from app.schemas.chat import NotificationStatus


class NotificationCooldownService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_cooldown(
        self, conversation_id: str, direction: NotificationDirection
    ) -> Optional[NotificationCooldown]:
        return (
            self.db.query(NotificationCooldown)
            .filter(
                NotificationCooldown.order_id == conversation_id,
                NotificationCooldown.direction == NotificationDirection(direction).value,
            )
            .first()
        )

    def get_or_create_cooldown(
        self, conversation_id: str, direction: NotificationDirection
    ) -> NotificationCooldown:
        """Existing row or a new pending one; the caller commits."""
        cooldown = self.get_cooldown(conversation_id, direction)
        if cooldown is None:
            cooldown = NotificationCooldown(
                order_id=conversation_id,
                direction=NotificationDirection(direction).value,
                last_notified_at=None,
                queued_unnotified_count=0,
            )
            self.db.add(cooldown)
            self.db.flush()
        return cooldown

    def status(
        self,
        conversation_id: str,
        direction: NotificationDirection,
        engine: NotificationCooldownEngine,
        now: Optional[datetime] = None,
    ) -> NotificationStatus:
        cooldown = self.get_cooldown(conversation_id, direction)
        if cooldown is None:
            return NotificationStatus(
                conversation_id=conversation_id,
                direction=NotificationDirection(direction).value,
            )
        remaining = engine.remaining(cooldown, now)
        return NotificationStatus(
            conversation_id=conversation_id,
            direction=cooldown.direction,
            last_notified_at=cooldown.last_notified_at,
            queued_unnotified_count=cooldown.queued_unnotified_count,
            remaining_seconds=max(0, math.ceil(remaining.total_seconds())),
            can_notify_now=engine.can_notify(cooldown, now),
        )
