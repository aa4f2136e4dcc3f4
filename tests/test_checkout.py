"""Tests for checkout and buy-now."""

from decimal import Decimal

import pytest

from storefront.domain.exceptions import (
    EmptyCartError, InvalidPaymentSignatureError, NotAuthenticatedError, OrderIdConflictError,
    PaymentAlreadyUsedError, ProductNotFoundError
)
from storefront.domain.models import (
    OrderStatus, PaymentInfo, PaymentStatus, ShippingAddress, ShippingInfo
)
from storefront.application.cart_operations import AddToCartUseCase, RemoveFromCartUseCase
from storefront.application.checkout import BuyNowItem, BuyNowUseCase, CheckoutUseCase
from storefront.application.get_cart import GetCartUseCase
from storefront.application.get_order import GetOrderUseCase
from storefront.application.order_ids import OrderIdGenerator
from storefront.infrastructure.db_schema import orders_tbl, outbox_events_tbl
from storefront.infrastructure.http_clients import sign_payment

from conftest import PAYMENT_SECRET, count_rows, insert_cart, set_price

SHIPPING_FEE = Decimal("5.99")
SHIPPING_INFO = ShippingInfo(
    name="Asha Rao",
    email="asha@example.com",
    address=ShippingAddress(line1="12 MG Road", city="Pune", state="MH", pincode="411001", mobile="9800000000"),
)


class CountingOrderIds(OrderIdGenerator):
    def __init__(self):
        super().__init__(100000)
        self.calls = 0

    async def next(self, uow):
        self.calls += 1
        return await super().next(uow)


class StaleOrderIds(OrderIdGenerator):
    """Hands out an already used number first, like a checkout that lost a race."""

    def __init__(self, stale: str):
        super().__init__(100000)
        self.stale = stale
        self.calls = 0

    async def next(self, uow):
        self.calls += 1
        if self.calls == 1:
            return self.stale
        return await super().next(uow)


def paid(gateway_order_id="gw_order_1", payment_id="pay_1"):
    return PaymentInfo(
        gateway_order_id=gateway_order_id,
        payment_id=payment_id,
        signature=sign_payment(PAYMENT_SECRET, gateway_order_id, payment_id),
    )


@pytest.fixture
def checkout(uow, order_ids, gateway):
    return CheckoutUseCase(uow, order_ids, gateway, SHIPPING_FEE)


@pytest.fixture
def buy_now(uow, order_ids, gateway):
    return BuyNowUseCase(uow, order_ids, gateway, SHIPPING_FEE, Decimal("0.08"))


async def order_count(engine):
    return await count_rows(engine, orders_tbl, orders_tbl.c.order_number.is_not(None))


class TestCheckout:
    async def test_creates_order_and_consumes_cart(self, uow, checkout):
        add = AddToCartUseCase(uow)
        await add("user-1", "prod-x")
        await add("user-1", "prod-x")

        order = await checkout("user-1", SHIPPING_INFO)

        assert order.order_number == "100000"
        assert order.status == OrderStatus.AWAITING_PAYMENT
        assert order.payment_status == PaymentStatus.PENDING
        assert [(l.product_id, l.quantity, l.product_name) for l in order.items] == [("prod-x", 2, "Desk Lamp")]
        assert order.subtotal == Decimal("20.00")
        assert order.shipping_fee == SHIPPING_FEE
        assert order.tax == Decimal("0")
        assert order.total == Decimal("25.99")
        assert order.shipping_address == SHIPPING_INFO

        cart = await GetCartUseCase(uow)("user-1")
        assert cart.items == []
        assert cart.cart_count == 0

    async def test_paid_checkout_is_confirmed(self, uow, checkout):
        await AddToCartUseCase(uow)("user-1", "prod-b")

        order = await checkout("user-1", SHIPPING_INFO, paid())

        assert order.status == OrderStatus.CONFIRMED
        assert order.payment_status == PaymentStatus.COMPLETED
        assert order.payment_id == "pay_1"

    async def test_empty_cart_creates_nothing(self, uow, gateway, engine):
        order_ids = CountingOrderIds()
        checkout = CheckoutUseCase(uow, order_ids, gateway, SHIPPING_FEE)

        with pytest.raises(EmptyCartError):
            await checkout("user-1", SHIPPING_INFO)

        assert await order_count(engine) == 0
        assert order_ids.calls == 0

    async def test_emptied_cart(self, uow, checkout, engine):
        await AddToCartUseCase(uow)("user-1", "prod-a")
        await RemoveFromCartUseCase(uow)("user-1", "prod-a")

        with pytest.raises(EmptyCartError):
            await checkout("user-1", SHIPPING_INFO)

        assert await order_count(engine) == 0

    async def test_empty_cart_does_not_advance_numbers(self, uow, checkout):
        with pytest.raises(EmptyCartError):
            await checkout("user-1")
        await AddToCartUseCase(uow)("user-1", "prod-a")

        order = await checkout("user-1")

        assert order.order_number == "100000"

    async def test_sequential_numbers(self, uow, checkout):
        add = AddToCartUseCase(uow)
        await add("user-1", "prod-a")
        first = await checkout("user-1")
        await add("user-2", "prod-b")
        second = await checkout("user-2")

        assert int(second.order_number) == int(first.order_number) + 1

    async def test_order_keeps_snapshot_price(self, uow, checkout, engine):
        await AddToCartUseCase(uow)("user-1", "prod-x")
        order = await checkout("user-1")

        await set_price(engine, "prod-x", Decimal("15.00"))
        stored = await GetOrderUseCase(uow)("user-1", order.id)

        assert stored.items[0].unit_price == Decimal("10.00")
        assert stored.subtotal == Decimal("10.00")

    async def test_uses_price_from_add_time(self, uow, checkout, engine):
        await AddToCartUseCase(uow)("user-1", "prod-x")
        await set_price(engine, "prod-x", Decimal("12.00"))

        order = await checkout("user-1")

        assert order.items[0].unit_price == Decimal("10.00")

    async def test_number_conflict_is_retried(self, uow, checkout, gateway):
        add = AddToCartUseCase(uow)
        await add("user-1", "prod-a")
        first = await checkout("user-1")
        await add("user-2", "prod-b")
        order_ids = StaleOrderIds(first.order_number)

        second = await CheckoutUseCase(uow, order_ids, gateway, SHIPPING_FEE)("user-2")

        assert order_ids.calls == 2
        assert second.order_number == "100001"

    async def test_number_conflict_surfaces_when_retries_run_out(self, uow, checkout, gateway):
        add = AddToCartUseCase(uow)
        await add("user-1", "prod-a")
        first = await checkout("user-1")
        await add("user-2", "prod-b")

        with pytest.raises(OrderIdConflictError):
            await CheckoutUseCase(uow, StaleOrderIds(first.order_number), gateway, SHIPPING_FEE, max_attempts=1)(
                "user-2"
            )

        # The losing attempt rolled back, the cart is still there
        assert (await GetCartUseCase(uow)("user-2")).total_items == 1

    async def test_bad_signature_creates_nothing(self, uow, checkout, engine):
        await AddToCartUseCase(uow)("user-1", "prod-a")
        forged = PaymentInfo(gateway_order_id="gw_order_1", payment_id="pay_1", signature="0" * 64)

        with pytest.raises(InvalidPaymentSignatureError):
            await checkout("user-1", SHIPPING_INFO, forged)

        assert await order_count(engine) == 0
        assert (await GetCartUseCase(uow)("user-1")).total_items == 1

    async def test_payment_without_gateway_is_rejected(self, uow, order_ids):
        await AddToCartUseCase(uow)("user-1", "prod-a")

        with pytest.raises(InvalidPaymentSignatureError):
            await CheckoutUseCase(uow, order_ids, None, SHIPPING_FEE)("user-1", None, paid())

    async def test_payment_cannot_settle_a_second_order(self, uow, checkout, engine):
        add = AddToCartUseCase(uow)
        await add("user-1", "prod-a")
        await checkout("user-1", SHIPPING_INFO, paid())
        await add("user-1", "prod-b")

        with pytest.raises(PaymentAlreadyUsedError):
            await checkout("user-1", SHIPPING_INFO, paid())

        assert await order_count(engine) == 1
        assert (await GetCartUseCase(uow)("user-1")).total_items == 1

    async def test_payment_id_reused_under_new_gateway_order(self, uow, checkout, buy_now):
        await buy_now("user-1", [BuyNowItem(product_id="prod-a")], SHIPPING_INFO, paid())
        await AddToCartUseCase(uow)("user-2", "prod-b")

        with pytest.raises(PaymentAlreadyUsedError):
            await checkout("user-2", SHIPPING_INFO, paid(gateway_order_id="gw_order_2"))

    async def test_storage_rejects_reused_payment(self, uow, buy_now):
        first = await buy_now("user-1", [BuyNowItem(product_id="prod-a")], SHIPPING_INFO, paid())
        copy = first.model_copy(update={"id": "order-copy", "order_number": "999999"})

        async with uow() as tx:
            with pytest.raises(PaymentAlreadyUsedError):
                await tx.orders.create(copy)

    async def test_collects_duplicate_carts(self, legacy_engine, uow, checkout, engine):
        await insert_cart(legacy_engine, "user-1", {"prod-a": 2}, age_minutes=10)
        await insert_cart(legacy_engine, "user-1", {"prod-a": 1, "prod-c": 1}, age_minutes=5)

        order = await checkout("user-1")

        assert {l.product_id: l.quantity for l in order.items} == {"prod-a": 3, "prod-c": 1}
        assert order.subtotal == Decimal("20.75")
        assert await count_rows(engine, orders_tbl, orders_tbl.c.status == OrderStatus.PENDING) == 0

    async def test_writes_order_event(self, uow, checkout, engine):
        await AddToCartUseCase(uow)("user-1", "prod-a")
        await checkout("user-1")

        assert await count_rows(
            engine, outbox_events_tbl, outbox_events_tbl.c.event_type == "order.confirmed"
        ) == 1

    async def test_requires_user(self, checkout):
        with pytest.raises(NotAuthenticatedError):
            await checkout(None)


class TestBuyNow:
    async def test_prices_from_catalog_with_tax(self, buy_now):
        order = await buy_now("user-1", [BuyNowItem(product_id="prod-a", quantity=2), BuyNowItem(product_id="prod-b")])

        assert order.subtotal == Decimal("34.00")
        assert order.tax == Decimal("2.72")
        assert order.total == Decimal("42.71")

    async def test_leaves_cart_untouched(self, uow, buy_now):
        await AddToCartUseCase(uow)("user-1", "prod-x")

        await buy_now("user-1", [BuyNowItem(product_id="prod-b")], SHIPPING_INFO, paid())

        cart = await GetCartUseCase(uow)("user-1")
        assert [(i.product_id, i.quantity) for i in cart.items] == [("prod-x", 1)]

    async def test_paid_buy_now(self, buy_now):
        order = await buy_now("user-1", [BuyNowItem(product_id="prod-c")], SHIPPING_INFO, paid())

        assert order.status == OrderStatus.CONFIRMED
        assert order.payment_status == PaymentStatus.COMPLETED

    async def test_paid_buy_now_cannot_be_replayed(self, buy_now, engine):
        await buy_now("user-1", [BuyNowItem(product_id="prod-a")], SHIPPING_INFO, paid())

        with pytest.raises(PaymentAlreadyUsedError):
            await buy_now("user-1", [BuyNowItem(product_id="prod-b", quantity=3)], SHIPPING_INFO, paid())

        assert await order_count(engine) == 1

    async def test_repeated_product_becomes_one_line(self, buy_now):
        order = await buy_now("user-1", [BuyNowItem(product_id="prod-a"), BuyNowItem(product_id="prod-a")])

        assert [(l.product_id, l.quantity) for l in order.items] == [("prod-a", 2)]

    async def test_unknown_product(self, buy_now, engine):
        with pytest.raises(ProductNotFoundError):
            await buy_now("user-1", [BuyNowItem(product_id="prod-a"), BuyNowItem(product_id="missing")])

        assert await order_count(engine) == 0

    async def test_empty_items(self, buy_now):
        with pytest.raises(EmptyCartError):
            await buy_now("user-1", [])

    async def test_shares_number_sequence_with_checkout(self, uow, checkout, buy_now):
        await AddToCartUseCase(uow)("user-1", "prod-a")
        first = await checkout("user-1")
        second = await buy_now("user-1", [BuyNowItem(product_id="prod-b")])

        assert second.order_number == "100001"
        assert first.order_number == "100000"
