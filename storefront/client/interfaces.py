from abc import ABC, abstractmethod
from typing import List

from storefront.application.batch_cart import CartOperation, GuestCartItem
from storefront.client.models import CartSnapshot, FlushResult


class CartBackend(ABC):
    """Server side of a cart session"""

    @abstractmethod
    async def get_cart(self, user_id: str) -> CartSnapshot:
        pass

    @abstractmethod
    async def apply_batch(self, user_id: str, operations: List[CartOperation]) -> FlushResult:
        pass

    @abstractmethod
    async def merge_guest_cart(self, user_id: str, items: List[GuestCartItem]) -> CartSnapshot:
        pass
