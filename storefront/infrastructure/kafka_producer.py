import json
import logging
from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError

from storefront.application.interfaces import EventPublisher

logger = logging.getLogger(__name__)


class KafkaProducerClient(EventPublisher):
    """Publishes cart and order events, keyed by aggregate so one cart's events stay ordered"""

    def __init__(self, bootstrap_servers: str, topic: str):
        self._bootstrap_servers = bootstrap_servers
        self._topic = topic
        self._producer: AIOKafkaProducer | None = None

    async def start(self):
        if self._producer:
            return
        self._producer = AIOKafkaProducer(
            bootstrap_servers=self._bootstrap_servers,
            key_serializer=lambda key: key.encode(),
            value_serializer=lambda value: json.dumps(value).encode(),
            acks="all",
            enable_idempotence=True
        )
        await self._producer.start()
        logger.info(f"Kafka producer started for {self._topic}")

    async def stop(self):
        if self._producer:
            await self._producer.stop()
            self._producer = None
            logger.info("Kafka producer stopped")

    async def publish(self, event_type: str, key: str, payload: dict) -> bool:
        if not self._producer:
            logger.error("Kafka producer not started")
            return False

        try:
            record = await self._producer.send_and_wait(
                self._topic, value={"event_type": event_type, **payload}, key=key
            )
        except KafkaError as e:
            logger.error(f"Failed to publish {event_type} for {key}: {e}")
            return False

        logger.info(f"Published {event_type} for {key} at {record.topic}[{record.partition}]@{record.offset}")
        return True
