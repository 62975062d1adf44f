"""
Notification cooldown engine.

Decides, per outbound message, whether an offline recipient gets an email
now or the message is queued until the sender triggers a batch notification.
At most one email goes out per (conversation, direction) per cooldown window;
an explicit "notify" from the sender never lowers that floor.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Protocol

from app.schemas.chat import SenderRole
from app.utils.dates import ensure_utc, utcnow

logger = logging.getLogger(__name__)


class NotificationDirection(str, Enum):
    CUSTOMER_TO_EXPERT = "customer_to_expert"
    EXPERT_TO_CUSTOMER = "expert_to_customer"


def direction_for(sender_role: SenderRole | str) -> Optional[NotificationDirection]:
    """Direction of a message by its sender role; system messages have none."""
    role = SenderRole(sender_role)
    if role == SenderRole.CUSTOMER:
        return NotificationDirection.CUSTOMER_TO_EXPERT
    if role == SenderRole.EXPERT:
        return NotificationDirection.EXPERT_TO_CUSTOMER
    return None


class DecisionReason(str, Enum):
    NO_RECIPIENT = "no_recipient"
    RECIPIENT_ONLINE = "recipient_online"
    NOTIFIED = "notified"
    IN_COOLDOWN = "in_cooldown"


class CooldownState(Protocol):
    """Anything carrying the two cooldown fields (the ORM row in practice)."""

    last_notified_at: Optional[datetime]
    queued_unnotified_count: int


@dataclass(frozen=True)
class CooldownDecision:
    should_email: bool
    reason: DecisionReason
    queued_unnotified_count: int
    remaining: timedelta = timedelta(0)

    @property
    def remaining_seconds(self) -> int:
        return max(0, math.ceil(self.remaining.total_seconds()))


class NotificationCooldownEngine:
    def __init__(self, cooldown: timedelta) -> None:
        if cooldown <= timedelta(0):
            raise ValueError("cooldown must be positive")
        self.cooldown = cooldown

    def remaining(self, state: CooldownState, now: Optional[datetime] = None) -> timedelta:
        """Time left in the current window; zero when an email may go out."""
        last = ensure_utc(state.last_notified_at)
        if last is None:
            return timedelta(0)
        now = ensure_utc(now) or utcnow()
        return max(timedelta(0), last + self.cooldown - now)

    def can_notify(self, state: CooldownState, now: Optional[datetime] = None) -> bool:
        return self.remaining(state, now) == timedelta(0)

    def on_message_sent(
        self,
        state: CooldownState,
        *,
        recipient_online: bool,
        explicit_notify_requested: bool = False,
        has_recipient: bool = True,
        now: Optional[datetime] = None,
    ) -> CooldownDecision:
        """
        Apply one send to ``state`` and return the decision.

        The state is mutated in place; the caller persists it.
        """
        now = ensure_utc(now) or utcnow()
        count = state.queued_unnotified_count or 0

        if not has_recipient:
            return CooldownDecision(False, DecisionReason.NO_RECIPIENT, count)

        if recipient_online:
            state.queued_unnotified_count = 0
            return CooldownDecision(False, DecisionReason.RECIPIENT_ONLINE, 0)

        remaining = self.remaining(state, now)
        if remaining == timedelta(0):
            state.last_notified_at = now
            state.queued_unnotified_count = 0
            return CooldownDecision(True, DecisionReason.NOTIFIED, 0)

        state.queued_unnotified_count = count + 1
        if explicit_notify_requested:
            logger.info(
                "Notify requested inside cooldown, %ss remaining",
                math.ceil(remaining.total_seconds()),
            )
        return CooldownDecision(
            False, DecisionReason.IN_COOLDOWN, state.queued_unnotified_count, remaining
        )

    def on_notify_requested(
        self,
        state: CooldownState,
        *,
        recipient_online: bool,
        has_recipient: bool = True,
        now: Optional[datetime] = None,
    ) -> CooldownDecision:
        """
        Sender pressed "Notify" for the queued messages.

        Same floor as an automatic send, but a refusal inside the window does
        not add to the queued count.
        """
        now = ensure_utc(now) or utcnow()
        count = state.queued_unnotified_count or 0

        if not has_recipient:
            return CooldownDecision(False, DecisionReason.NO_RECIPIENT, count)

        remaining = self.remaining(state, now)
        if remaining > timedelta(0):
            return CooldownDecision(False, DecisionReason.IN_COOLDOWN, count, remaining)

        if recipient_online:
            state.queued_unnotified_count = 0
            return CooldownDecision(False, DecisionReason.RECIPIENT_ONLINE, 0)

        state.last_notified_at = now
        state.queued_unnotified_count = 0
        return CooldownDecision(True, DecisionReason.NOTIFIED, 0)
