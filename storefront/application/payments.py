import logging
from typing import Optional

from storefront.domain.models import ConfirmedOrder, OrderStatus, PaymentIntent, PaymentStatus
from storefront.domain.exceptions import (
    InvalidPaymentSignatureError, InvalidStatusTransitionError, OrderNotFoundError
)
from storefront.domain.pricing import to_minor_units
from storefront.application.cart_state import require_user
from storefront.application.interfaces import PaymentGateway

logger = logging.getLogger(__name__)


class CreatePaymentIntentUseCase:
    def __init__(self, unit_of_work, payment_gateway: PaymentGateway, currency: str):
        self._uow = unit_of_work
        self._gateway = payment_gateway
        self._currency = currency

    async def __call__(self, user_id: Optional[str], order_id: str) -> PaymentIntent:
        user_id = require_user(user_id)

        # 1. Only the owner's unpaid orders
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order or order.user_id != user_id:
                raise OrderNotFoundError(order_id)
            if not order.can_be_paid():
                raise InvalidStatusTransitionError(order.status, OrderStatus.CONFIRMED)

        # 2. Gateway call outside the transaction
        intent = await self._gateway.create_payment_intent(
            amount=to_minor_units(order.total),
            currency=self._currency,
            receipt=order.order_number,
            notes={"order_id": order.id, "user_id": user_id}
        )

        # 3. Remember the gateway reference for verification
        async with self._uow() as uow:
            await uow.orders.update_payment(order.id, PaymentStatus.PENDING, gateway_order_id=intent.intent_id)
            await uow.commit()

        logger.info(f"Payment intent {intent.intent_id} created for order {order.order_number}")
        return intent


class VerifyPaymentUseCase:
    def __init__(self, unit_of_work, payment_gateway: PaymentGateway):
        self._uow = unit_of_work
        self._gateway = payment_gateway

    async def __call__(
        self, user_id: Optional[str], gateway_order_id: str, payment_id: str, signature: str
    ) -> ConfirmedOrder:
        user_id = require_user(user_id)
        if not self._gateway.verify_signature(gateway_order_id, payment_id, signature):
            logger.warning(f"Payment signature mismatch for gateway order {gateway_order_id}")
            raise InvalidPaymentSignatureError()

        async with self._uow() as uow:
            order = await uow.orders.get_by_gateway_order_id(gateway_order_id)
            if not order or order.user_id != user_id:
                raise OrderNotFoundError(gateway_order_id)

            # Idempotency
            if order.payment_status == PaymentStatus.COMPLETED and order.payment_id == payment_id:
                logger.info(f"Order {order.order_number} already paid")
                return order
            if not order.can_be_paid():
                raise InvalidStatusTransitionError(order.status, OrderStatus.CONFIRMED)

            await uow.orders.update_status(order.id, OrderStatus.CONFIRMED)
            await uow.orders.update_payment(order.id, PaymentStatus.COMPLETED, payment_id=payment_id)
            await uow.outbox.create(
                event_type="order.paid",
                event_data={
                    "order_id": order.id,
                    "order_number": order.order_number,
                    "payment_id": payment_id,
                    "total": str(order.total)
                },
                aggregate_id=order.id
            )
            order = await uow.orders.get_by_id(order.id)
            await uow.commit()

        logger.info(f"Order {order.order_number} paid ({payment_id})")
        return order
