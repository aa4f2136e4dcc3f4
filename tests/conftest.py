"""Pytest fixtures for storefront tests."""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, insert, select, text, update
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from storefront.domain.models import OrderStatus, PaymentIntent
from storefront.application.interfaces import EventPublisher, PaymentGateway
from storefront.application.order_ids import OrderIdGenerator
from storefront.infrastructure.db_schema import (
    PENDING_CART_INDEX, metadata, orders_tbl, order_items_tbl, products_tbl
)
from storefront.infrastructure.http_clients import sign_payment
from storefront.infrastructure.unit_of_work import UnitOfWork

PAYMENT_SECRET = "test-secret"

PRODUCTS = {
    "prod-x": ("Desk Lamp", Decimal("10.00")),
    "prod-a": ("Notebook", Decimal("4.50")),
    "prod-b": ("Fountain Pen", Decimal("25.00")),
    "prod-c": ("Ink Bottle", Decimal("7.25")),
}


class FakePaymentGateway(PaymentGateway):
    """Signs like the real gateway, without the network."""

    def __init__(self, secret: str = PAYMENT_SECRET):
        self.secret = secret
        self.intents = []

    async def create_payment_intent(self, amount: int, currency: str, receipt: str, notes: dict) -> PaymentIntent:
        intent = PaymentIntent(intent_id=f"gw_order_{len(self.intents) + 1}", amount=amount, currency=currency)
        self.intents.append({"intent": intent, "receipt": receipt, "notes": notes})
        return intent

    def verify_signature(self, order_ref: str, payment_ref: str, signature: str) -> bool:
        return sign_payment(self.secret, order_ref, payment_ref) == signature


class FakePublisher(EventPublisher):
    def __init__(self, fail_types=()):
        self.published = []
        self.fail_types = set(fail_types)

    async def publish(self, event_type: str, key: str, payload: dict) -> bool:
        if event_type in self.fail_types:
            return False
        self.published.append((event_type, key, payload))
        return True


@pytest.fixture
async def engine():
    """In-memory database with the real schema."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
        await conn.execute(
            insert(products_tbl),
            [{"id": pid, "name": name, "price": price} for pid, (name, price) in PRODUCTS.items()],
        )
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def uow(session_factory):
    return UnitOfWork(session_factory)


@pytest.fixture
def order_ids():
    return OrderIdGenerator(100000)


@pytest.fixture
def gateway():
    return FakePaymentGateway()


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
async def legacy_engine(engine):
    """Database without the one-pending-cart index, as older deployments had."""
    async with engine.begin() as conn:
        await conn.execute(text(f"DROP INDEX {PENDING_CART_INDEX}"))
    return engine


async def insert_cart(engine, user_id, lines, age_minutes=0):
    """Insert a pending cart directly; `lines` maps product id to quantity."""
    cart_id = str(uuid.uuid4())
    created_at = datetime.now(timezone.utc) - timedelta(minutes=age_minutes)
    async with engine.begin() as conn:
        await conn.execute(
            insert(orders_tbl).values(
                id=cart_id,
                user_id=user_id,
                status=OrderStatus.PENDING,
                subtotal=0,
                shipping_fee=0,
                tax=0,
                total=0,
                created_at=created_at,
                updated_at=created_at,
            )
        )
        for offset, (product_id, quantity) in enumerate(lines.items()):
            await conn.execute(
                insert(order_items_tbl).values(
                    id=str(uuid.uuid4()),
                    order_id=cart_id,
                    product_id=product_id,
                    quantity=quantity,
                    unit_price=PRODUCTS[product_id][1],
                    created_at=created_at + timedelta(seconds=offset),
                )
            )
    return cart_id


async def set_price(engine, product_id, price):
    async with engine.begin() as conn:
        await conn.execute(update(products_tbl).where(products_tbl.c.id == product_id).values(price=price))


async def count_rows(engine, table, *where):
    async with engine.connect() as conn:
        result = await conn.execute(select(func.count()).select_from(table).where(*where))
        return result.scalar_one()
