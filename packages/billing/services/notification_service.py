"""
Best-effort delivery of billing events.
"""

from typing import Any, Dict, Optional

from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.billing.models.domain.enums import NotificationType
from packages.billing.models.domain.notifications import BillingNotification
from packages.billing.providers.notifications.factory import get_notification_sender
from packages.billing.providers.notifications.interface import (
    NotificationSenderInterface,
)

logger = get_logger(__name__)


class NotificationService:
    """
    Wraps the configured sender so a delivery problem never fails the
    billing operation that triggered it.
    """

    def __init__(self, sender: Optional[NotificationSenderInterface] = None):
        self.sender = sender or get_notification_sender()

    @trace_span
    async def notify(
        self,
        notification_type: NotificationType,
        subscription_id: int,
        invoice_id: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> bool:
        notification = BillingNotification(
            type=notification_type,
            subscription_id=subscription_id,
            invoice_id=invoice_id,
            payload=payload or {},
        )
        try:
            return await self.sender.send(notification)
        except Exception as e:
            logger.error(
                f"Failed to send {notification_type.value} notification: {e}",
                extra={
                    "notification_type": notification_type.value,
                    "subscription_id": subscription_id,
                    "invoice_id": invoice_id,
                },
                exc_info=True,
            )
            return False

    async def close(self) -> None:
        await self.sender.close()
