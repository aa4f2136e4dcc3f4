import logging
import json

logger = logging.getLogger(__name__)


class ProcessOutboxEventsUseCase:
    def __init__(self, unit_of_work, event_publisher):
        self._uow = unit_of_work
        self._publisher = event_publisher

    async def __call__(self, limit: int = 10) -> int:
        """Sends pending cart and order events in creation order. Returns how many went out."""
        sent = 0

        async with self._uow() as uow:
            for row in await uow.outbox.get_pending(limit=limit):
                payload = row["event_data"]
                if isinstance(payload, str):
                    payload = json.loads(payload)

                # A failed send leaves the row pending for the next pass
                try:
                    delivered = await self._publisher.publish(
                        event_type=row["event_type"], key=row["aggregate_id"], payload=payload
                    )
                except Exception as e:
                    logger.error(f"Outbox event {row['id']} ({row['event_type']}) raised: {e}")
                    continue

                if not delivered:
                    logger.warning(f"Outbox event {row['id']} not delivered, retrying later")
                    continue

                await uow.outbox.mark_as_published(row["id"])
                sent += 1

            await uow.commit()

        if sent:
            logger.info(f"Sent {sent} outbox events")
        return sent
