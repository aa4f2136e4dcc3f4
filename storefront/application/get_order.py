from typing import List, Optional

from storefront.domain.models import ConfirmedOrder
from storefront.domain.exceptions import OrderNotFoundError
from storefront.application.cart_state import require_user


class GetOrderUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, user_id: Optional[str], order_id: str) -> ConfirmedOrder:
        user_id = require_user(user_id)
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            # Someone else's order looks exactly like a missing one
            if not order or order.user_id != user_id:
                raise OrderNotFoundError(order_id)
            return order


class ListOrdersUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, user_id: Optional[str]) -> List[ConfirmedOrder]:
        user_id = require_user(user_id)
        async with self._uow() as uow:
            return await uow.orders.list_for_user(user_id)
