"""
Notification sender interface.

Delivery (email, chat, webhooks) happens downstream; billing only hands
events over.
"""

from abc import ABC, abstractmethod

from packages.billing.models.domain.notifications import BillingNotification


class NotificationSenderInterface(ABC):
    """Abstract interface for billing event delivery."""

    @abstractmethod
    async def send(self, notification: BillingNotification) -> bool:
        """
        Hand one event to the delivery channel.

        Returns:
            True if the event was accepted
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        pass
