import logging

from storefront.domain.models import OrderStatus
from storefront.domain.exceptions import DomainException
from storefront.application.update_order_status import transition_order

logger = logging.getLogger(__name__)

FULFILMENT_STATUSES = {
    "order.shipped": OrderStatus.SHIPPED,
    "order.delivered": OrderStatus.DELIVERED,
    "order.cancelled": OrderStatus.CANCELLED,
}


class ProcessInboxEventsUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, limit: int = 10) -> int:
        """Applies pending fulfilment events. Returns the number processed."""
        processed = 0

        async with self._uow() as uow:
            pending = await uow.inbox.get_pending(limit=limit)
            if not pending:
                return 0

            logger.info(f"Processing {len(pending)} inbox events")

            for event in pending:
                status = FULFILMENT_STATUSES.get(event["event_type"])
                if status is None:
                    logger.warning(f"Unknown inbox event type {event['event_type']} ({event['id']})")
                    await uow.inbox.mark_as_failed(event["id"])
                    continue

                try:
                    data = event["event_data"] or {}
                    await transition_order(
                        uow,
                        event["order_id"],
                        status,
                        tracking_link=data.get("tracking_link"),
                        admin_message=data.get("reason")
                    )
                    await uow.inbox.mark_as_processed(event["id"])
                    processed += 1
                except DomainException as e:
                    logger.error(f"Inbox event {event['id']} rejected: {e}")
                    await uow.inbox.mark_as_failed(event["id"])

            await uow.commit()

        return processed
