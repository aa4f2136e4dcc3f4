import logging
from decimal import Decimal
from typing import List, Optional

from storefront.application.batch_cart import GuestCartItem
from storefront.client.events import CartEventBus
from storefront.client.interfaces import CartBackend
from storefront.client.models import CartLine, CartSnapshot

logger = logging.getLogger(__name__)


class GuestCart:
    """Cart of a signed-out visitor, held entirely on the client"""

    def __init__(self):
        self._lines: List[CartLine] = []

    def snapshot(self) -> CartSnapshot:
        return CartSnapshot(items=[line.model_copy() for line in self._lines])

    def is_empty(self) -> bool:
        return not self._lines

    def add(self, product_id: str, quantity: int = 1, unit_price: Optional[Decimal] = None) -> None:
        if quantity < 1:
            raise ValueError(f"Quantity must be at least 1, got {quantity}")
        line = self._find(product_id)
        if line:
            line.quantity += quantity
        else:
            self._lines.append(CartLine(product_id=product_id, quantity=quantity, unit_price=unit_price))

    def remove(self, product_id: str) -> None:
        self._lines = [line for line in self._lines if line.product_id != product_id]

    def set_quantity(self, product_id: str, quantity: int) -> None:
        if quantity <= 0:
            self.remove(product_id)
            return
        line = self._find(product_id)
        if line:
            line.quantity = quantity

    def clear(self) -> None:
        self._lines = []

    def to_merge_items(self) -> List[GuestCartItem]:
        return [GuestCartItem(product_id=line.product_id, quantity=line.quantity) for line in self._lines]

    def _find(self, product_id: str) -> Optional[CartLine]:
        return next((line for line in self._lines if line.product_id == product_id), None)


class GuestCartMerger:
    """Moves the guest cart into the user's server cart once per sign-in"""

    def __init__(self, backend: CartBackend, guest_cart: GuestCart, events: CartEventBus):
        self._backend = backend
        self._guest_cart = guest_cart
        self._events = events
        self._last_user_id: Optional[str] = None

    async def on_identity_change(self, user_id: Optional[str]) -> bool:
        """Returns True when a merge was performed"""
        if user_id is None:
            # Signed out: the next sign-in merges again
            self._last_user_id = None
            return False
        if user_id == self._last_user_id:
            return False

        # Marked before the call so a slow merge cannot be started twice
        self._last_user_id = user_id
        if self._guest_cart.is_empty():
            logger.info(f"Guest cart empty, nothing to merge for user {user_id}")
            return False

        items = self._guest_cart.to_merge_items()
        await self._backend.merge_guest_cart(user_id, items)
        self._guest_cart.clear()
        logger.info(f"Merged {len(items)} guest cart lines into cart of user {user_id}")
        self._events.publish()
        return True
