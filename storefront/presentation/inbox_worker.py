import asyncio
import logging
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from storefront.database import AsyncSessionLocal
from storefront.infrastructure.unit_of_work import UnitOfWork
from storefront.application.process_inbox import ProcessInboxEventsUseCase

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


async def inbox_worker(poll_interval: float = 2, batch_size: int = 10):
    """Applies stored fulfilment events to orders"""
    logger.info("Inbox worker started")

    while True:
        try:
            uow = UnitOfWork(AsyncSessionLocal)
            use_case = ProcessInboxEventsUseCase(unit_of_work=uow)

            processed = await use_case(limit=batch_size)
            if processed:
                logger.info(f"Applied {processed} fulfilment events")

            await asyncio.sleep(poll_interval)

        except Exception as e:
            logger.error(f"Inbox worker error: {e}", exc_info=True)
            await asyncio.sleep(10)


async def main():
    await inbox_worker()


if __name__ == "__main__":
    asyncio.run(main())
