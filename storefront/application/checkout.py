import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field

from storefront.domain.models import (
    ConfirmedOrder, OrderLine, OrderStatus, PaymentInfo, PaymentStatus, ShippingInfo
)
from storefront.domain.exceptions import (
    EmptyCartError, InvalidPaymentSignatureError, PaymentAlreadyUsedError, ProductNotFoundError
)
from storefront.domain.pricing import compute_totals
from storefront.application.cart_state import require_user
from storefront.application.consolidate_cart import consolidate_pending
from storefront.application.interfaces import PaymentGateway
from storefront.application.order_ids import OrderIdGenerator
from storefront.application.retry import retry_on_conflict

logger = logging.getLogger(__name__)


class BuyNowItem(BaseModel):
    product_id: str
    quantity: int = Field(default=1, ge=1)


def verify_payment_info(gateway: Optional[PaymentGateway], payment_info: Optional[PaymentInfo]) -> None:
    """Gateway-mediated flows must prove the capture before any order is written"""
    if payment_info is None:
        return
    if gateway is None or not gateway.verify_signature(
        payment_info.gateway_order_id, payment_info.payment_id, payment_info.signature
    ):
        logger.warning(f"Payment signature mismatch for gateway order {payment_info.gateway_order_id}")
        raise InvalidPaymentSignatureError()


async def place_order(
    uow,
    order_ids: OrderIdGenerator,
    user_id: str,
    lines: List[OrderLine],
    shipping_fee: Decimal,
    tax_rate: Decimal,
    shipping_info: Optional[ShippingInfo],
    payment_info: Optional[PaymentInfo]
) -> ConfirmedOrder:
    paid = payment_info is not None
    if paid and await uow.orders.is_payment_used(payment_info.payment_id, payment_info.gateway_order_id):
        logger.warning(f"Payment {payment_info.payment_id} already settled another order")
        raise PaymentAlreadyUsedError(payment_info.payment_id)

    totals = compute_totals(lines, shipping_fee, tax_rate)
    order_number = await order_ids.next(uow)
    now = datetime.now(timezone.utc)

    order = ConfirmedOrder(
        id=str(uuid.uuid4()),
        order_number=order_number,
        user_id=user_id,
        status=OrderStatus.CONFIRMED if paid else OrderStatus.AWAITING_PAYMENT,
        payment_status=PaymentStatus.COMPLETED if paid else PaymentStatus.PENDING,
        items=lines,
        subtotal=totals.subtotal,
        shipping_fee=totals.shipping_fee,
        tax=totals.tax,
        total=totals.total,
        shipping_address=shipping_info,
        payment_id=payment_info.payment_id if paid else None,
        gateway_order_id=payment_info.gateway_order_id if paid else None,
        created_at=now,
        updated_at=now
    )
    await uow.orders.create(order)
    await uow.outbox.create(
        event_type="order.confirmed",
        event_data={
            "order_id": order.id,
            "order_number": order.order_number,
            "user_id": user_id,
            "status": order.status.value,
            "total": str(order.total)
        },
        aggregate_id=order.id
    )
    # Re-read to join product display data
    return await uow.orders.get_by_id(order.id)


class CheckoutUseCase:
    def __init__(
        self,
        unit_of_work,
        order_ids: OrderIdGenerator,
        payment_gateway: Optional[PaymentGateway],
        shipping_fee: Decimal,
        tax_rate: Decimal = Decimal("0"),
        max_attempts: int = 3
    ):
        self._uow = unit_of_work
        self._order_ids = order_ids
        self._gateway = payment_gateway
        self._shipping_fee = shipping_fee
        self._tax_rate = tax_rate
        self._max_attempts = max_attempts

    async def __call__(
        self,
        user_id: Optional[str],
        shipping_info: Optional[ShippingInfo] = None,
        payment_info: Optional[PaymentInfo] = None
    ) -> ConfirmedOrder:
        user_id = require_user(user_id)
        verify_payment_info(self._gateway, payment_info)
        return await retry_on_conflict(
            lambda: self._checkout(user_id, shipping_info, payment_info), self._max_attempts
        )

    async def _checkout(
        self, user_id: str, shipping_info: Optional[ShippingInfo], payment_info: Optional[PaymentInfo]
    ) -> ConfirmedOrder:
        async with self._uow() as uow:
            # 1. One cart, even if racing requests left duplicates behind
            cart, _ = await consolidate_pending(uow, user_id)
            if cart is None or not cart.items:
                raise EmptyCartError()

            # 2. Lines are copied with the price captured at add time
            lines = [
                OrderLine(product_id=item.product_id, quantity=item.quantity, unit_price=item.unit_price)
                for item in cart.items
            ]
            order = await place_order(
                uow, self._order_ids, user_id, lines,
                self._shipping_fee, self._tax_rate, shipping_info, payment_info
            )

            # 3. The cart is consumed by the order
            await uow.carts.delete_carts([cart.id])
            await uow.commit()

        logger.info(f"Checkout for user {user_id}: order {order.order_number} ({order.status.value}), total {order.total}")
        return order


class BuyNowUseCase:
    """Confirms an ad-hoc item list without touching the stored cart"""

    def __init__(
        self,
        unit_of_work,
        order_ids: OrderIdGenerator,
        payment_gateway: Optional[PaymentGateway],
        shipping_fee: Decimal,
        tax_rate: Decimal,
        max_attempts: int = 3
    ):
        self._uow = unit_of_work
        self._order_ids = order_ids
        self._gateway = payment_gateway
        self._shipping_fee = shipping_fee
        self._tax_rate = tax_rate
        self._max_attempts = max_attempts

    async def __call__(
        self,
        user_id: Optional[str],
        items: List[BuyNowItem],
        shipping_info: Optional[ShippingInfo] = None,
        payment_info: Optional[PaymentInfo] = None
    ) -> ConfirmedOrder:
        user_id = require_user(user_id)
        if not items:
            raise EmptyCartError()
        verify_payment_info(self._gateway, payment_info)

        # One line per product
        quantities: dict[str, int] = {}
        for item in items:
            quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity

        return await retry_on_conflict(
            lambda: self._buy(user_id, quantities, shipping_info, payment_info), self._max_attempts
        )

    async def _buy(
        self,
        user_id: str,
        quantities: dict[str, int],
        shipping_info: Optional[ShippingInfo],
        payment_info: Optional[PaymentInfo]
    ) -> ConfirmedOrder:
        async with self._uow() as uow:
            products = await uow.products.get_many(list(quantities))
            lines = []
            for product_id, quantity in quantities.items():
                product = products.get(product_id)
                if not product:
                    raise ProductNotFoundError(product_id)
                lines.append(OrderLine(product_id=product_id, quantity=quantity, unit_price=product.price))

            order = await place_order(
                uow, self._order_ids, user_id, lines,
                self._shipping_fee, self._tax_rate, shipping_info, payment_info
            )
            await uow.commit()

        logger.info(f"Buy-now for user {user_id}: order {order.order_number}, total {order.total}")
        return order
