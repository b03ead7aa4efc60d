"""
Log-only notification sender.

Used locally and in tests, where no broker is running.
"""

from common.core.otel_axiom_exporter import get_logger
from packages.billing.models.domain.notifications import BillingNotification
from packages.billing.providers.notifications.interface import (
    NotificationSenderInterface,
)

logger = get_logger(__name__)


class LogNotificationSender(NotificationSenderInterface):
    """Writes every event to the application log."""

    async def send(self, notification: BillingNotification) -> bool:
        logger.info(
            f"Billing notification {notification.type.value} for subscription {notification.subscription_id}",
            extra={
                "notification_type": notification.type.value,
                "subscription_id": notification.subscription_id,
                "invoice_id": notification.invoice_id,
            },
        )
        return True

    async def close(self) -> None:
        pass
