"""
RabbitMQ notification sender.

Publishes each event as JSON to the billing notifications queue, where the
mailer and chat integrations consume it.
"""

from typing import Optional

from common.core.otel_axiom_exporter import trace_span, get_logger
from common.providers.messaging.constants import QueueName
from common.providers.messaging.factory import get_message_queue
from common.providers.messaging.interface import MessageQueueInterface
from packages.billing.models.domain.notifications import BillingNotification
from packages.billing.providers.notifications.interface import (
    NotificationSenderInterface,
)

logger = get_logger(__name__)


class RabbitMQNotificationSender(NotificationSenderInterface):
    def __init__(self, message_queue: Optional[MessageQueueInterface] = None):
        self.message_queue = message_queue or get_message_queue()
        self.queue = QueueName.BILLING_NOTIFICATIONS

    @trace_span
    async def send(self, notification: BillingNotification) -> bool:
        published = await self.message_queue.publish(
            self.queue, notification.model_dump(mode="json")
        )
        if not published:
            logger.warning(
                f"Billing notification {notification.type.value} was not published",
                extra={
                    "notification_type": notification.type.value,
                    "subscription_id": notification.subscription_id,
                },
            )
        return published

    async def close(self) -> None:
        await self.message_queue.disconnect()
