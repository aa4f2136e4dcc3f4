import json
import logging
import asyncio
from typing import Awaitable, Callable, Optional
from aiokafka import AIOKafkaConsumer, TopicPartition

logger = logging.getLogger(__name__)


class KafkaConsumerClient:
    """Feeds events to a handler; an offset is committed only after its handler finished"""

    def __init__(
        self,
        bootstrap_servers: str,
        topic: str,
        group_id: str = "storefront-fulfilment",
        retry_delay: float = 1.0
    ):
        self._bootstrap_servers = bootstrap_servers
        self._topic = topic
        self._group_id = group_id
        self._retry_delay = retry_delay
        self._consumer: AIOKafkaConsumer | None = None

    async def start(self):
        self._consumer = AIOKafkaConsumer(
            self._topic,
            bootstrap_servers=self._bootstrap_servers,
            group_id=self._group_id,
            enable_auto_commit=False,
            auto_offset_reset="earliest"
        )
        await self._consumer.start()
        logger.info(f"Kafka consumer started on {self._topic} ({self._group_id})")

    async def stop(self):
        if self._consumer:
            await self._consumer.stop()
            self._consumer = None
            logger.info("Kafka consumer stopped")

    async def consume(self, handler: Callable[[dict], Awaitable[None]]):
        async for msg in self._consumer:
            position = f"{msg.topic}[{msg.partition}]@{msg.offset}"
            event = self._decode(msg.value)
            if event is None:
                # Unreadable messages are skipped for good
                logger.error(f"Dropping undecodable message at {position}")
                await self._consumer.commit()
                continue

            try:
                await handler(event)
            except Exception as e:
                logger.error(f"Handler failed for {event.get('event_type')} at {position}: {e}", exc_info=True)
                # Deliver the same message again after a pause
                self._consumer.seek(TopicPartition(msg.topic, msg.partition), msg.offset)
                await asyncio.sleep(self._retry_delay)
                continue

            await self._consumer.commit()

    @staticmethod
    def _decode(value: Optional[bytes]) -> Optional[dict]:
        if not value:
            return None
        try:
            event = json.loads(value.decode())
        except (UnicodeDecodeError, json.JSONDecodeError):
            return None
        return event if isinstance(event, dict) else None
