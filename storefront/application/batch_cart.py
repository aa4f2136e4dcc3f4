import logging
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, model_validator

from storefront.domain.models import BatchEntryResult, BatchResult, CartSummary
from storefront.domain.exceptions import (
    CartNotFoundError, InvalidQuantityError, ItemNotFoundError, ProductNotFoundError
)
from storefront.application.cart_state import (
    add_item, remove_item, set_item_quantity, load_summary, record_cart_updated, require_user
)
from storefront.application.retry import retry_on_conflict

logger = logging.getLogger(__name__)

# Failures that belong to one entry and must not abort the rest of the batch
ENTRY_ERRORS = (ProductNotFoundError, ItemNotFoundError, CartNotFoundError, InvalidQuantityError)


class CartOperation(BaseModel):
    action: Literal["add", "remove", "set"]
    product_id: str
    quantity: Optional[int] = None

    @model_validator(mode="after")
    def check_quantity(self):
        # set to zero or below removes the line; add never shrinks it
        if self.action == "add" and self.quantity is not None and self.quantity < 1:
            raise ValueError("add quantity must be at least 1")
        if self.action == "set" and self.quantity is None:
            raise ValueError("set needs a quantity")
        return self


class GuestCartItem(BaseModel):
    product_id: str
    quantity: int = Field(default=1, ge=1)


class BatchCartUseCase:
    def __init__(self, unit_of_work, max_attempts: int = 2):
        self._uow = unit_of_work
        self._max_attempts = max_attempts

    async def __call__(self, user_id: Optional[str], operations: List[CartOperation]) -> BatchResult:
        user_id = require_user(user_id)
        if not operations:
            return BatchResult(results=[], summary=CartSummary())
        return await retry_on_conflict(lambda: self._apply(user_id, operations), self._max_attempts)

    async def batch_add(self, user_id: Optional[str], product_ids: List[str]) -> BatchResult:
        return await self(user_id, [CartOperation(action="add", product_id=pid) for pid in product_ids])

    async def batch_remove(self, user_id: Optional[str], product_ids: List[str]) -> BatchResult:
        return await self(user_id, [CartOperation(action="remove", product_id=pid) for pid in product_ids])

    async def _apply(self, user_id: str, operations: List[CartOperation]) -> BatchResult:
        async with self._uow() as uow:
            cart = await uow.carts.find_pending(user_id)
            results = []

            for op in operations:
                try:
                    if op.action == "add":
                        if cart is None:
                            cart = await uow.carts.get_or_create_pending(user_id)
                        quantity = 1 if op.quantity is None else op.quantity
                        action, _ = await add_item(uow, cart, op.product_id, quantity)
                    elif op.action == "remove":
                        await remove_item(uow, cart, op.product_id)
                        action = "removed"
                    else:
                        action, _ = await set_item_quantity(uow, cart, op.product_id, op.quantity)
                    results.append(BatchEntryResult(product_id=op.product_id, status="success", action=action))
                except ENTRY_ERRORS as e:
                    logger.warning(f"Batch entry {op.action} {op.product_id} failed for user {user_id}: {e}")
                    results.append(BatchEntryResult(product_id=op.product_id, status="error", reason=str(e)))

            if cart is None:
                summary = CartSummary()
            else:
                summary = await load_summary(uow, user_id, cart.id)
                if any(r.status == "success" for r in results):
                    await record_cart_updated(uow, user_id, summary)
            await uow.commit()

        succeeded = sum(1 for r in results if r.status == "success")
        logger.info(f"Batch for user {user_id}: {succeeded}/{len(results)} operations applied")
        return BatchResult(results=results, summary=summary)


class MergeGuestCartUseCase:
    """Folds a signed-out cart into the user's server cart, quantity-aware"""

    def __init__(self, unit_of_work, max_attempts: int = 2):
        self._batch = BatchCartUseCase(unit_of_work, max_attempts)

    async def __call__(self, user_id: Optional[str], items: List[GuestCartItem]) -> BatchResult:
        user_id = require_user(user_id)
        if not items:
            logger.info(f"Guest cart empty, nothing to merge for user {user_id}")
            return BatchResult(results=[], summary=CartSummary())
        operations = [
            CartOperation(action="add", product_id=item.product_id, quantity=item.quantity)
            for item in items
        ]
        logger.info(f"Merging {len(items)} guest cart lines for user {user_id}")
        return await self._batch(user_id, operations)
