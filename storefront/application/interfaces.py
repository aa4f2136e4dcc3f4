from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional, List
from storefront.domain.models import (
    CartAggregate, ConfirmedOrder, LineItem, OrderStatus, PaymentIntent, PaymentStatus, Product
)


class CartRepository(ABC):
    @abstractmethod
    async def find_pending(self, user_id: str) -> Optional[CartAggregate]:
        pass

    @abstractmethod
    async def list_pending(self, user_id: str) -> List[CartAggregate]:
        pass

    @abstractmethod
    async def create_pending(self, user_id: str) -> CartAggregate:
        pass

    @abstractmethod
    async def get_or_create_pending(self, user_id: str) -> CartAggregate:
        pass

    @abstractmethod
    async def add_line(self, cart_id: str, product_id: str, quantity: int, unit_price: Decimal) -> LineItem:
        pass

    @abstractmethod
    async def increment_line(self, line_id: str, by: int) -> None:
        pass

    @abstractmethod
    async def set_line_quantity(self, line_id: str, quantity: int) -> None:
        pass

    @abstractmethod
    async def delete_line(self, line_id: str) -> None:
        pass

    @abstractmethod
    async def move_line(self, line_id: str, cart_id: str) -> None:
        pass

    @abstractmethod
    async def delete_carts(self, cart_ids: List[str]) -> None:
        pass


class OrderRepository(ABC):
    @abstractmethod
    async def get_latest_order_number(self) -> Optional[str]:
        pass

    @abstractmethod
    async def create(self, order: ConfirmedOrder) -> None:
        pass

    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[ConfirmedOrder]:
        pass

    @abstractmethod
    async def is_payment_used(self, payment_id: str, gateway_order_id: str) -> bool:
        pass

    @abstractmethod
    async def get_by_gateway_order_id(self, gateway_order_id: str) -> Optional[ConfirmedOrder]:
        pass

    @abstractmethod
    async def list_for_user(self, user_id: str) -> List[ConfirmedOrder]:
        pass

    @abstractmethod
    async def update_status(self, order_id: str, status: OrderStatus, **fields) -> None:
        pass

    @abstractmethod
    async def update_payment(
        self,
        order_id: str,
        payment_status: PaymentStatus,
        payment_id: Optional[str] = None,
        gateway_order_id: Optional[str] = None
    ) -> None:
        pass


class ProductRepository(ABC):
    @abstractmethod
    async def get(self, product_id: str) -> Optional[Product]:
        pass

    @abstractmethod
    async def get_many(self, product_ids: List[str]) -> dict[str, Product]:
        pass


class OutboxRepository(ABC):
    @abstractmethod
    async def create(self, event_type: str, event_data: dict, aggregate_id: str) -> str:
        pass

    @abstractmethod
    async def get_pending(self, limit: int = 10) -> List[dict]:
        pass

    @abstractmethod
    async def mark_as_published(self, event_id: str) -> None:
        pass


class InboxRepository(ABC):
    @abstractmethod
    async def create(self, event_type: str, event_data: dict, order_id: str, idempotency_key: str) -> str:
        pass

    @abstractmethod
    async def get_pending(self, limit: int = 10) -> List[dict]:
        pass

    @abstractmethod
    async def mark_as_processed(self, event_id: str) -> None:
        pass

    @abstractmethod
    async def mark_as_failed(self, event_id: str) -> None:
        pass

    @abstractmethod
    async def is_known(self, idempotency_key: str) -> bool:
        pass


class UnitOfWork(ABC):
    @property
    @abstractmethod
    def carts(self) -> CartRepository:
        pass

    @property
    @abstractmethod
    def orders(self) -> OrderRepository:
        pass

    @property
    @abstractmethod
    def products(self) -> ProductRepository:
        pass

    @property
    @abstractmethod
    def outbox(self) -> OutboxRepository:
        pass

    @property
    @abstractmethod
    def inbox(self) -> InboxRepository:
        pass

    @abstractmethod
    async def commit(self):
        pass

    @abstractmethod
    async def rollback(self):
        pass


class PaymentGateway(ABC):
    @abstractmethod
    async def create_payment_intent(self, amount: int, currency: str, receipt: str, notes: dict) -> PaymentIntent:
        pass

    @abstractmethod
    def verify_signature(self, order_ref: str, payment_ref: str, signature: str) -> bool:
        pass


class EventPublisher(ABC):
    @abstractmethod
    async def publish(self, event_type: str, key: str, payload: dict) -> bool:
        pass
