import asyncio
import logging
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from storefront.database import AsyncSessionLocal
from storefront.infrastructure.kafka_consumer import KafkaConsumerClient
from storefront.infrastructure.unit_of_work import UnitOfWork
from storefront.config import settings

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def make_event_handler(unit_of_work: UnitOfWork):
    async def handle_fulfilment_event(event_data: dict):
        """Stores a fulfilment event in the inbox; the inbox worker applies it later"""
        event_type = event_data.get("event_type")
        order_id = event_data.get("order_id")
        if not event_type or not order_id:
            logger.warning(f"Skipping malformed fulfilment event: {event_data}")
            return

        idempotency_key = event_data.get("event_id") or f"{event_type}_{order_id}"
        logger.info(f"Received {event_type} for order {order_id}")

        async with unit_of_work() as uow:
            if await uow.inbox.is_known(idempotency_key):
                logger.info(f"Event {idempotency_key} already received")
                return

            await uow.inbox.create(
                event_type=event_type,
                event_data=event_data,
                order_id=order_id,
                idempotency_key=idempotency_key
            )
            await uow.commit()
        logger.info(f"Stored {event_type} for order {order_id} in inbox")

    return handle_fulfilment_event


async def fulfilment_consumer():
    logger.info("Fulfilment consumer started")

    consumer = KafkaConsumerClient(
        settings.KAFKA_BOOTSTRAP_SERVERS, settings.FULFILMENT_EVENTS_TOPIC, group_id="storefront-fulfilment"
    )
    await consumer.start()

    try:
        await consumer.consume(make_event_handler(UnitOfWork(AsyncSessionLocal)))
    finally:
        await consumer.stop()


async def main():
    await fulfilment_consumer()


if __name__ == "__main__":
    asyncio.run(main())
