from .interface import MessageQueueInterface
from .rabbitmq_async import RabbitMQClient


def get_message_queue() -> MessageQueueInterface:
    """Publisher for billing events. Connects on first publish."""
    return RabbitMQClient()
