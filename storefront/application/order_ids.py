import logging

from storefront.domain.order_ids import DEFAULT_FLOOR, next_order_number

logger = logging.getLogger(__name__)


class OrderIdGenerator:
    """Reads the latest order number and proposes the next one.

    Nothing is reserved: two concurrent checkouts may be handed the same number,
    and the unique constraint on insert turns the loser into OrderIdConflictError.
    """

    def __init__(self, floor: int = DEFAULT_FLOOR):
        self._floor = floor

    async def next(self, uow) -> str:
        latest = await uow.orders.get_latest_order_number()
        order_number = next_order_number(latest, self._floor)
        logger.info(f"Next order number {order_number} (latest: {latest})")
        return order_number
