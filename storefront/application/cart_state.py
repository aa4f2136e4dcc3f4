"""Single-line cart edits shared by every cart use case.

Each helper runs inside an open unit of work and keeps the in-memory
aggregate in step with the rows it writes, so several edits can be applied
to one cart within a single transaction.
"""
from typing import Optional, Tuple

from storefront.domain.models import CartAggregate, CartSummary, LineItem
from storefront.domain.exceptions import (
    CartNotFoundError, InvalidQuantityError, ItemNotFoundError, NotAuthenticatedError, ProductNotFoundError
)


def require_user(user_id: Optional[str]) -> str:
    if not user_id:
        raise NotAuthenticatedError()
    return user_id


async def add_item(uow, cart: CartAggregate, product_id: str, quantity: int = 1) -> Tuple[str, LineItem]:
    if quantity < 1:
        raise InvalidQuantityError(quantity)
    existing = cart.find_item(product_id)
    if existing:
        await uow.carts.increment_line(existing.id, quantity)
        existing.quantity += quantity
        return "incremented", existing

    # Price is captured now and never follows later catalog changes
    product = await uow.products.get(product_id)
    if not product:
        raise ProductNotFoundError(product_id)
    line = await uow.carts.add_line(cart.id, product_id, quantity, product.price)
    cart.items.append(line)
    return "added", line


async def remove_item(uow, cart: Optional[CartAggregate], product_id: str) -> LineItem:
    if cart is None:
        raise CartNotFoundError()
    existing = cart.find_item(product_id)
    if not existing:
        raise ItemNotFoundError(product_id)
    await uow.carts.delete_line(existing.id)
    cart.items.remove(existing)
    return existing


async def set_item_quantity(
    uow, cart: Optional[CartAggregate], product_id: str, quantity: int
) -> Tuple[str, LineItem]:
    if quantity <= 0:
        return "removed", await remove_item(uow, cart, product_id)
    if cart is None:
        raise CartNotFoundError()
    existing = cart.find_item(product_id)
    if not existing:
        raise ItemNotFoundError(product_id)
    await uow.carts.set_line_quantity(existing.id, quantity)
    existing.quantity = quantity
    return "updated", existing


async def load_summary(uow, user_id: str, cart_id: Optional[str] = None) -> CartSummary:
    carts = await uow.carts.list_pending(user_id)
    if cart_id is not None:
        carts = [cart for cart in carts if cart.id == cart_id]
    return CartSummary.of(carts)


async def record_cart_updated(uow, user_id: str, summary: CartSummary) -> None:
    await uow.outbox.create(
        event_type="cart.updated",
        event_data={
            "user_id": user_id,
            "cart_id": summary.cart_id,
            "total_items": summary.total_items,
            "total_price": str(summary.total_price)
        },
        aggregate_id=summary.cart_id or user_id
    )
