import asyncio
import logging
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from storefront.database import AsyncSessionLocal
from storefront.infrastructure.unit_of_work import UnitOfWork
from storefront.infrastructure.kafka_producer import KafkaProducerClient
from storefront.application.process_outbox import ProcessOutboxEventsUseCase
from storefront.config import settings

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


async def outbox_worker(poll_interval: float = 3, batch_size: int = 20):
    """Relays cart and order events from the outbox table to Kafka"""
    logger.info("Outbox worker started")

    kafka_producer = KafkaProducerClient(settings.KAFKA_BOOTSTRAP_SERVERS, settings.ORDER_EVENTS_TOPIC)
    await kafka_producer.start()

    try:
        while True:
            try:
                uow = UnitOfWork(AsyncSessionLocal)
                use_case = ProcessOutboxEventsUseCase(unit_of_work=uow, event_publisher=kafka_producer)

                published = await use_case(limit=batch_size)
                if published:
                    logger.info(f"Published {published} outbox events")

                await asyncio.sleep(poll_interval)

            except Exception as e:
                logger.error(f"Outbox worker error: {e}", exc_info=True)
                await asyncio.sleep(10)
    finally:
        await kafka_producer.stop()


async def main():
    await outbox_worker()


if __name__ == "__main__":
    asyncio.run(main())
