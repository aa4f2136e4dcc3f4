import logging
from typing import Optional

from storefront.domain.models import ConfirmedOrder, OrderStatus
from storefront.domain.exceptions import InvalidStatusTransitionError, OrderNotFoundError

logger = logging.getLogger(__name__)


async def transition_order(
    uow,
    order_id: str,
    status: OrderStatus,
    tracking_link: Optional[str] = None,
    admin_message: Optional[str] = None
) -> ConfirmedOrder:
    order = await uow.orders.get_by_id(order_id)
    if not order:
        raise OrderNotFoundError(order_id)
    if not order.can_transition_to(status):
        raise InvalidStatusTransitionError(order.status, status)

    fields = {}
    if tracking_link is not None:
        fields["tracking_link"] = tracking_link
    if admin_message is not None:
        fields["admin_message"] = admin_message
    await uow.orders.update_status(order_id, status, **fields)
    logger.info(f"Order {order.order_number}: {order.status.value} -> {status.value}")
    return await uow.orders.get_by_id(order_id)


class UpdateOrderStatusUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(
        self,
        order_id: str,
        status: OrderStatus,
        tracking_link: Optional[str] = None,
        admin_message: Optional[str] = None
    ) -> ConfirmedOrder:
        async with self._uow() as uow:
            order = await transition_order(uow, order_id, status, tracking_link, admin_message)
            await uow.commit()
        return order
