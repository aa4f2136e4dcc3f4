import logging
from typing import Optional

from storefront.domain.models import CartMutationResult
from storefront.application.cart_state import (
    add_item, remove_item, set_item_quantity, load_summary, record_cart_updated, require_user
)
from storefront.application.retry import retry_on_conflict

logger = logging.getLogger(__name__)


class AddToCartUseCase:
    def __init__(self, unit_of_work, max_attempts: int = 2):
        self._uow = unit_of_work
        self._max_attempts = max_attempts

    async def __call__(self, user_id: Optional[str], product_id: str) -> CartMutationResult:
        user_id = require_user(user_id)
        return await retry_on_conflict(lambda: self._add(user_id, product_id), self._max_attempts)

    async def _add(self, user_id: str, product_id: str) -> CartMutationResult:
        async with self._uow() as uow:
            cart = await uow.carts.get_or_create_pending(user_id)
            action, _ = await add_item(uow, cart, product_id)
            summary = await load_summary(uow, user_id, cart.id)
            await record_cart_updated(uow, user_id, summary)
            await uow.commit()

        logger.info(f"Cart {cart.id}: {action} {product_id} for user {user_id}")
        return CartMutationResult(
            action=action,
            product_id=product_id,
            affected=[item for item in summary.items if item.product_id == product_id],
            summary=summary
        )


class RemoveFromCartUseCase:
    """Deletes the whole line; there is no partial removal"""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, user_id: Optional[str], product_id: str) -> CartMutationResult:
        user_id = require_user(user_id)
        async with self._uow() as uow:
            cart = await uow.carts.find_pending(user_id)
            removed = await remove_item(uow, cart, product_id)
            summary = await load_summary(uow, user_id, cart.id)
            await record_cart_updated(uow, user_id, summary)
            await uow.commit()

        logger.info(f"Cart {cart.id}: removed {product_id} for user {user_id}")
        return CartMutationResult(action="removed", product_id=product_id, affected=[removed], summary=summary)


class SetQuantityUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, user_id: Optional[str], product_id: str, quantity: int) -> CartMutationResult:
        user_id = require_user(user_id)
        async with self._uow() as uow:
            cart = await uow.carts.find_pending(user_id)
            action, line = await set_item_quantity(uow, cart, product_id, quantity)
            summary = await load_summary(uow, user_id, cart.id)
            await record_cart_updated(uow, user_id, summary)
            await uow.commit()

        logger.info(f"Cart {cart.id}: {action} {product_id} (quantity {quantity}) for user {user_id}")
        return CartMutationResult(action=action, product_id=product_id, affected=[line], summary=summary)
