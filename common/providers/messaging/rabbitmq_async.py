"""
Async RabbitMQ publisher for outbound billing events.

Every event is published persistent, through a confirm-mode channel, to a
durable queue. Messages the consumer rejects are dead-lettered to
``<queue>.dead`` and kept for a day.
"""

import asyncio
import json
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set
from urllib.parse import quote

import aio_pika
from aio_pika.abc import AbstractChannel, AbstractRobustConnection
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger
from .interface import MessageQueueInterface

logger = get_logger(__name__)

propagator = TraceContextTextMapPropagator()

DEAD_LETTER_SUFFIX = ".dead"
DEAD_LETTER_TTL_MS = 24 * 60 * 60 * 1000


def dead_letter_name(queue: str) -> str:
    return f"{queue}{DEAD_LETTER_SUFFIX}"


class RabbitMQClient(MessageQueueInterface):
    """Lazily connecting publisher. Construction never touches the network."""

    def __init__(self):
        self.connection: Optional[AbstractRobustConnection] = None
        self.channel: Optional[AbstractChannel] = None
        self._declared: Set[str] = set()
        self._connect_lock = asyncio.Lock()

    @property
    def url(self) -> str:
        return (
            f"amqp://{quote(settings.rabbitmq_username)}:{quote(settings.rabbitmq_password)}"
            f"@{settings.rabbitmq_host}:{settings.rabbitmq_port}"
            f"/{quote(settings.rabbitmq_vhost, safe='')}"
        )

    @property
    def is_connected(self) -> bool:
        return self.channel is not None and not self.channel.is_closed

    async def connect(self) -> bool:
        async with self._connect_lock:
            if self.is_connected:
                return True
            try:
                self.connection = await aio_pika.connect_robust(self.url)
                self.channel = await self.connection.channel(publisher_confirms=True)
            except Exception as e:
                logger.error(
                    f"Failed to connect to RabbitMQ at {settings.rabbitmq_host}: {e}"
                )
                return False
            logger.info("Connected to RabbitMQ")
            return True

    async def disconnect(self) -> None:
        try:
            if self.connection and not self.connection.is_closed:
                # closing the connection closes its channels
                await self.connection.close()
        except Exception as e:
            logger.error(f"Error disconnecting from RabbitMQ: {e}")
        finally:
            self.connection = None
            self.channel = None
            self._declared.clear()

    async def declare_queue(
        self, queue: str, durable: bool = True, dlq_enabled: bool = True
    ) -> bool:
        if not self.is_connected and not await self.connect():
            return False
        try:
            arguments: Dict[str, Any] = {}
            if dlq_enabled:
                dead = dead_letter_name(queue)
                await self.channel.declare_queue(
                    dead,
                    durable=True,
                    arguments={"x-message-ttl": DEAD_LETTER_TTL_MS},
                )
                # default exchange routes by queue name
                arguments = {
                    "x-dead-letter-exchange": "",
                    "x-dead-letter-routing-key": dead,
                }
            await self.channel.declare_queue(
                queue, durable=durable, arguments=arguments or None
            )
        except Exception as e:
            logger.error(f"Failed to declare queue {queue}: {e}")
            return False
        self._declared.add(queue)
        return True

    def _build_message(self, message: Dict[str, Any]) -> aio_pika.Message:
        headers: Dict[str, Any] = {}
        propagator.inject(headers)
        return aio_pika.Message(
            body=json.dumps(message).encode(),
            content_type="application/json",
            delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
            message_id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc),
            type=message.get("type"),
            headers=headers,
        )

    async def publish(self, queue: str, message: Dict[str, Any]) -> bool:
        if not self.is_connected:
            self._declared.clear()
        if queue not in self._declared and not await self.declare_queue(queue):
            return False
        try:
            await self.channel.default_exchange.publish(
                self._build_message(message), routing_key=queue, mandatory=True
            )
        except Exception as e:
            logger.error(
                f"Failed to publish {message.get('type', 'message')} to {queue}: {e}"
            )
            return False
        logger.debug(f"Published {message.get('type', 'message')} to {queue}")
        return True
