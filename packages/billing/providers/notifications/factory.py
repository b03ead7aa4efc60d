"""
Factory for the notification sender.
"""

from typing import Callable, Dict

from common.core.config import settings
from common.core.constants import NotificationProviderType
from packages.billing.providers.notifications.interface import (
    NotificationSenderInterface,
)
from packages.billing.providers.notifications.log_sender import LogNotificationSender
from packages.billing.providers.notifications.rabbitmq_sender import (
    RabbitMQNotificationSender,
)

NOTIFICATION_SENDER_REGISTRY: Dict[
    NotificationProviderType, Callable[[], NotificationSenderInterface]
] = {
    NotificationProviderType.LOG: LogNotificationSender,
    NotificationProviderType.RABBITMQ: RabbitMQNotificationSender,
}


def get_notification_sender() -> NotificationSenderInterface:
    """Sender selected by settings.notification_provider."""
    return NOTIFICATION_SENDER_REGISTRY[
        NotificationProviderType(settings.notification_provider)
    ]()
