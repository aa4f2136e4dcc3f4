"""Tests for the deferred payment flow."""

from decimal import Decimal

import pytest

from storefront.domain.exceptions import (
    InvalidPaymentSignatureError, InvalidStatusTransitionError, OrderNotFoundError, PaymentAlreadyUsedError
)
from storefront.domain.models import OrderStatus, PaymentStatus
from storefront.application.cart_operations import AddToCartUseCase
from storefront.application.checkout import CheckoutUseCase
from storefront.application.payments import CreatePaymentIntentUseCase, VerifyPaymentUseCase
from storefront.infrastructure.db_schema import outbox_events_tbl
from storefront.infrastructure.http_clients import RazorpayClient, sign_payment

from conftest import PAYMENT_SECRET, count_rows


@pytest.fixture
async def awaiting_order(uow, order_ids, gateway):
    await AddToCartUseCase(uow)("user-1", "prod-b")
    return await CheckoutUseCase(uow, order_ids, gateway, Decimal("5.99"))("user-1")


class TestSignPayment:
    def test_known_vector(self):
        client = RazorpayClient("https://gateway.invalid", "key", "secret")
        signature = sign_payment("secret", "order_1", "pay_1")

        assert len(signature) == 64
        assert client.verify_signature("order_1", "pay_1", signature)
        assert not client.verify_signature("order_1", "pay_2", signature)

    def test_without_secret_nothing_verifies(self):
        client = RazorpayClient("https://gateway.invalid", "key", "")

        assert not client.verify_signature("order_1", "pay_1", sign_payment("", "order_1", "pay_1"))


class TestCreatePaymentIntent:
    async def test_amount_in_minor_units(self, uow, gateway, awaiting_order):
        intent = await CreatePaymentIntentUseCase(uow, gateway, "INR")("user-1", awaiting_order.id)

        assert intent.amount == 3099
        assert intent.currency == "INR"
        assert gateway.intents[0]["receipt"] == awaiting_order.order_number

    async def test_other_users_order(self, uow, gateway, awaiting_order):
        with pytest.raises(OrderNotFoundError):
            await CreatePaymentIntentUseCase(uow, gateway, "INR")("user-2", awaiting_order.id)


class TestVerifyPayment:
    async def test_confirms_order(self, uow, gateway, awaiting_order, engine):
        intent = await CreatePaymentIntentUseCase(uow, gateway, "INR")("user-1", awaiting_order.id)
        signature = sign_payment(PAYMENT_SECRET, intent.intent_id, "pay_42")

        order = await VerifyPaymentUseCase(uow, gateway)("user-1", intent.intent_id, "pay_42", signature)

        assert order.status == OrderStatus.CONFIRMED
        assert order.payment_status == PaymentStatus.COMPLETED
        assert order.payment_id == "pay_42"
        assert await count_rows(
            engine, outbox_events_tbl, outbox_events_tbl.c.event_type == "order.paid"
        ) == 1

    async def test_repeated_verification_is_harmless(self, uow, gateway, awaiting_order, engine):
        intent = await CreatePaymentIntentUseCase(uow, gateway, "INR")("user-1", awaiting_order.id)
        signature = sign_payment(PAYMENT_SECRET, intent.intent_id, "pay_42")
        verify = VerifyPaymentUseCase(uow, gateway)

        await verify("user-1", intent.intent_id, "pay_42", signature)
        order = await verify("user-1", intent.intent_id, "pay_42", signature)

        assert order.status == OrderStatus.CONFIRMED
        assert await count_rows(
            engine, outbox_events_tbl, outbox_events_tbl.c.event_type == "order.paid"
        ) == 1

    async def test_bad_signature(self, uow, gateway, awaiting_order):
        intent = await CreatePaymentIntentUseCase(uow, gateway, "INR")("user-1", awaiting_order.id)

        with pytest.raises(InvalidPaymentSignatureError):
            await VerifyPaymentUseCase(uow, gateway)("user-1", intent.intent_id, "pay_42", "f" * 64)

    async def test_unknown_gateway_order(self, uow, gateway):
        signature = sign_payment(PAYMENT_SECRET, "gw_unknown", "pay_1")

        with pytest.raises(OrderNotFoundError):
            await VerifyPaymentUseCase(uow, gateway)("user-1", "gw_unknown", "pay_1", signature)

    async def test_cancelled_order_cannot_be_paid(self, uow, gateway, awaiting_order):
        intent = await CreatePaymentIntentUseCase(uow, gateway, "INR")("user-1", awaiting_order.id)
        async with uow() as u:
            await u.orders.update_status(awaiting_order.id, OrderStatus.CANCELLED)
            await u.commit()
        signature = sign_payment(PAYMENT_SECRET, intent.intent_id, "pay_42")

        with pytest.raises(InvalidStatusTransitionError):
            await VerifyPaymentUseCase(uow, gateway)("user-1", intent.intent_id, "pay_42", signature)

    async def test_payment_settles_only_one_order(self, uow, order_ids, gateway, awaiting_order):
        create_intent = CreatePaymentIntentUseCase(uow, gateway, "INR")
        verify = VerifyPaymentUseCase(uow, gateway)
        first = await create_intent("user-1", awaiting_order.id)
        await verify("user-1", first.intent_id, "pay_42", sign_payment(PAYMENT_SECRET, first.intent_id, "pay_42"))

        await AddToCartUseCase(uow)("user-1", "prod-a")
        second_order = await CheckoutUseCase(uow, order_ids, gateway, Decimal("5.99"))("user-1")
        second = await create_intent("user-1", second_order.id)

        with pytest.raises(PaymentAlreadyUsedError):
            await verify("user-1", second.intent_id, "pay_42", sign_payment(PAYMENT_SECRET, second.intent_id, "pay_42"))
