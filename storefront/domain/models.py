from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Literal, Optional
from pydantic import BaseModel, Field


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    CONFIRMED = "CONFIRMED"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# A confirmed order only ever moves forward; PENDING is reserved for carts.
ALLOWED_TRANSITIONS = {
    OrderStatus.AWAITING_PAYMENT: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
}


class Product(BaseModel):
    """Value Object: catalog entry"""
    id: str
    name: str
    price: Decimal


class LineItem(BaseModel):
    id: str
    product_id: str
    quantity: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class CartAggregate(BaseModel):
    """Domain Entity: a user's pending order acting as the cart"""
    id: str
    user_id: str
    items: list[LineItem] = Field(default_factory=list)
    created_at: datetime

    def find_item(self, product_id: str) -> Optional[LineItem]:
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def total_price(self) -> Decimal:
        return sum((item.line_total for item in self.items), Decimal("0"))


class CartSummary(BaseModel):
    cart_id: Optional[str] = None
    items: list[LineItem] = Field(default_factory=list)
    total_items: int = 0
    total_price: Decimal = Decimal("0")
    cart_count: int = 0

    @classmethod
    def of(cls, carts: list[CartAggregate]) -> "CartSummary":
        items = [item for cart in carts for item in cart.items]
        return cls(
            cart_id=carts[0].id if carts else None,
            items=items,
            total_items=sum(item.quantity for item in items),
            total_price=sum((item.line_total for item in items), Decimal("0")),
            cart_count=len(carts)
        )


class CartMutationResult(BaseModel):
    action: Literal["added", "incremented", "removed", "updated"]
    product_id: str
    affected: list[LineItem] = Field(default_factory=list)
    summary: CartSummary

    @property
    def total_items(self) -> int:
        return self.summary.total_items

    @property
    def total_price(self) -> Decimal:
        return self.summary.total_price


class BatchEntryResult(BaseModel):
    product_id: str
    status: Literal["success", "error"]
    action: Optional[str] = None
    reason: Optional[str] = None


class BatchResult(BaseModel):
    results: list[BatchEntryResult]
    summary: CartSummary

    @property
    def failed(self) -> list[BatchEntryResult]:
        return [r for r in self.results if r.status == "error"]


class ShippingAddress(BaseModel):
    line1: str
    city: str
    state: str
    pincode: str
    mobile: str


class ShippingInfo(BaseModel):
    name: str
    email: str
    address: ShippingAddress


class PaymentInfo(BaseModel):
    """Gateway response handed back by the client after capture"""
    gateway_order_id: str
    payment_id: str
    signature: str


class OrderLine(BaseModel):
    product_id: str
    quantity: int
    unit_price: Decimal
    product_name: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class ConfirmedOrder(BaseModel):
    """Domain Entity: immutable order snapshot"""
    id: str
    order_number: str
    user_id: str
    status: OrderStatus
    payment_status: PaymentStatus
    items: list[OrderLine]
    subtotal: Decimal
    shipping_fee: Decimal
    tax: Decimal
    total: Decimal
    shipping_address: Optional[ShippingInfo] = None
    payment_id: Optional[str] = None
    gateway_order_id: Optional[str] = None
    tracking_link: Optional[str] = None
    admin_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    def can_transition_to(self, status: OrderStatus) -> bool:
        return status in ALLOWED_TRANSITIONS.get(self.status, set())

    def can_be_paid(self) -> bool:
        """Only orders created without payment wait for verification"""
        return self.status == OrderStatus.AWAITING_PAYMENT

    def can_be_shipped(self) -> bool:
        return self.can_transition_to(OrderStatus.SHIPPED)

    def can_be_cancelled(self) -> bool:
        return self.can_transition_to(OrderStatus.CANCELLED)


class PaymentIntent(BaseModel):
    intent_id: str
    amount: int
    currency: str
