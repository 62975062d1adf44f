"""
Email delivery adapter interface.

The chat core decides whether a recipient is notified; adapters only hand a
flat ``EmailNotification`` to a provider.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from app.schemas.notification import EmailNotification, EmailSendResult


class BaseEmailAdapter(ABC):
    """Contract for email providers. New providers implement this interface."""

    @abstractmethod
    def send(self, notification: EmailNotification) -> EmailSendResult:
        """Deliver one notification. Raise DeliveryFailure if the provider refused it."""
        ...
