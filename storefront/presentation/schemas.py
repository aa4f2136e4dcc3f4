from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from storefront.domain.models import (
    BatchEntryResult, BatchResult, CartMutationResult, CartSummary, ConfirmedOrder, LineItem,
    OrderLine, OrderStatus, PaymentInfo, PaymentStatus, ShippingInfo
)
from storefront.application.batch_cart import CartOperation, GuestCartItem
from storefront.application.checkout import BuyNowItem


class AddItemRequest(BaseModel):
    product_id: str


class SetQuantityRequest(BaseModel):
    quantity: int


class BatchRequest(BaseModel):
    operations: List[CartOperation] = Field(min_length=1)


class MergeGuestCartRequest(BaseModel):
    items: List[GuestCartItem]


class CheckoutRequest(BaseModel):
    shipping_info: Optional[ShippingInfo] = None
    payment: Optional[PaymentInfo] = None


class BuyNowRequest(BaseModel):
    items: List[BuyNowItem] = Field(min_length=1)
    shipping_info: Optional[ShippingInfo] = None
    payment: Optional[PaymentInfo] = None


class VerifyPaymentRequest(BaseModel):
    gateway_order_id: str
    payment_id: str
    signature: str


class UpdateOrderStatusRequest(BaseModel):
    status: OrderStatus
    tracking_link: Optional[str] = None
    admin_message: Optional[str] = None


class CartResponse(BaseModel):
    cart_id: Optional[str] = None
    items: List[LineItem]
    total_items: int
    total_price: Decimal
    cart_count: int

    @classmethod
    def from_domain(cls, summary: CartSummary):
        return cls(**summary.model_dump())


class CartMutationResponse(BaseModel):
    success: bool = True
    action: str
    product_id: str
    affected: List[LineItem]
    total_items: int
    total_price: Decimal
    product_in_cart: bool

    @classmethod
    def from_domain(cls, result: CartMutationResult):
        return cls(
            action=result.action,
            product_id=result.product_id,
            affected=result.affected,
            total_items=result.total_items,
            total_price=result.total_price,
            product_in_cart=any(item.product_id == result.product_id for item in result.summary.items)
        )


class BatchResponse(BaseModel):
    success: bool
    results: List[BatchEntryResult]
    items: List[LineItem]
    total_items: int
    total_price: Decimal

    @classmethod
    def from_domain(cls, result: BatchResult):
        return cls(
            success=not result.failed,
            results=result.results,
            items=result.summary.items,
            total_items=result.summary.total_items,
            total_price=result.summary.total_price
        )


class ConsolidationResponse(BaseModel):
    message: str
    consolidated: int


class OrderResponse(BaseModel):
    id: str
    order_number: str
    status: OrderStatus
    payment_status: PaymentStatus
    items: List[OrderLine]
    subtotal: Decimal
    shipping_fee: Decimal
    tax: Decimal
    total: Decimal
    shipping_info: Optional[ShippingInfo] = None
    payment_id: Optional[str] = None
    tracking_link: Optional[str] = None
    admin_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, order: ConfirmedOrder):
        return cls(
            id=order.id,
            order_number=order.order_number,
            status=order.status,
            payment_status=order.payment_status,
            items=order.items,
            subtotal=order.subtotal,
            shipping_fee=order.shipping_fee,
            tax=order.tax,
            total=order.total,
            shipping_info=order.shipping_address,
            payment_id=order.payment_id,
            tracking_link=order.tracking_link,
            admin_message=order.admin_message,
            created_at=order.created_at,
            updated_at=order.updated_at
        )


class PaymentIntentResponse(BaseModel):
    intent_id: str
    amount: int
    currency: str
    key: str


class ErrorResponse(BaseModel):
    detail: str
