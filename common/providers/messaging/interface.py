from abc import ABC, abstractmethod
from typing import Dict, Any


class MessageQueueInterface(ABC):
    """Publish-only broker client used for outbound billing events."""

    @abstractmethod
    async def connect(self) -> bool:
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        pass

    @abstractmethod
    async def publish(self, queue: str, message: Dict[str, Any]) -> bool:
        """Publish one JSON message. Returns False instead of raising on failure."""
        pass

    @abstractmethod
    async def declare_queue(
        self, queue: str, durable: bool = True, dlq_enabled: bool = True
    ) -> bool:
        pass
