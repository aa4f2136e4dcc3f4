from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field

from storefront.domain.models import CartSummary, LineItem
from storefront.application.cart_state import require_user


class CartStatus(BaseModel):
    items: List[LineItem] = Field(default_factory=list)
    total_items: int = 0
    total_price: Decimal = Decimal("0")
    product_ids: List[str] = Field(default_factory=list)
    is_authenticated: bool = False
    is_product_in_cart: bool = False
    product_quantity: int = 0
    cart_count: int = 0


class GetCartUseCase:
    """Everything the user has pending, across duplicate carts if any exist"""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, user_id: Optional[str]) -> CartSummary:
        user_id = require_user(user_id)
        async with self._uow() as uow:
            carts = await uow.carts.list_pending(user_id)
            return CartSummary.of(carts)


class GetCartStatusUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, user_id: Optional[str], product_id: Optional[str] = None) -> CartStatus:
        if not user_id:
            return CartStatus()

        async with self._uow() as uow:
            summary = CartSummary.of(await uow.carts.list_pending(user_id))

        quantity = sum(item.quantity for item in summary.items if item.product_id == product_id)
        return CartStatus(
            items=summary.items,
            total_items=summary.total_items,
            total_price=summary.total_price,
            product_ids=[item.product_id for item in summary.items],
            is_authenticated=True,
            is_product_in_cart=quantity > 0,
            product_quantity=quantity,
            cart_count=summary.cart_count
        )
