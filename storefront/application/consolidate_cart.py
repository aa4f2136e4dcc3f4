import logging
from typing import Optional, Tuple
from pydantic import BaseModel

from storefront.domain.models import CartAggregate
from storefront.application.cart_state import load_summary, record_cart_updated, require_user

logger = logging.getLogger(__name__)


class ConsolidationResult(BaseModel):
    consolidated: int
    cart: Optional[CartAggregate] = None


async def consolidate_pending(uow, user_id: str) -> Tuple[Optional[CartAggregate], int]:
    """Folds every pending cart of the user into the oldest one.

    Returns the canonical cart (None when the user has none) and the number of
    carts merged away. Running it again with no writes in between is a no-op.
    """
    carts = await uow.carts.list_pending(user_id)
    if len(carts) <= 1:
        return (carts[0] if carts else None), 0

    canonical, duplicates = carts[0], carts[1:]
    for cart in duplicates:
        for item in cart.items:
            existing = canonical.find_item(item.product_id)
            if existing:
                await uow.carts.increment_line(existing.id, item.quantity)
                await uow.carts.delete_line(item.id)
                existing.quantity += item.quantity
            else:
                # The line keeps its own snapshot price when it moves
                await uow.carts.move_line(item.id, canonical.id)
                canonical.items.append(item)

    await uow.carts.delete_carts([cart.id for cart in duplicates])
    return canonical, len(duplicates)


class ConsolidateCartsUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, user_id: Optional[str]) -> ConsolidationResult:
        user_id = require_user(user_id)
        async with self._uow() as uow:
            canonical, consolidated = await consolidate_pending(uow, user_id)
            if not consolidated:
                return ConsolidationResult(consolidated=0, cart=canonical)

            summary = await load_summary(uow, user_id, canonical.id)
            await record_cart_updated(uow, user_id, summary)
            await uow.commit()

        logger.info(f"Consolidated {consolidated} duplicate carts into {canonical.id} for user {user_id}")
        return ConsolidationResult(consolidated=consolidated, cart=canonical)
