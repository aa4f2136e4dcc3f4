import uuid
from decimal import Decimal
from typing import Optional, List
from datetime import datetime, timezone
from sqlalchemy import select, insert, update, delete, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.domain.models import (
    CartAggregate, ConfirmedOrder, LineItem, OrderLine, OrderStatus, PaymentStatus, Product, ShippingInfo
)
from storefront.domain.exceptions import (
    CartConflictError, OrderIdConflictError, PaymentAlreadyUsedError, PersistenceError
)
from storefront.infrastructure.db_schema import (
    orders_tbl, order_items_tbl, products_tbl, outbox_events_tbl, inbox_events_tbl
)
from storefront.application.interfaces import (
    CartRepository, OrderRepository, ProductRepository, OutboxRepository, InboxRepository
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SQLAlchemyCartRepository(CartRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def find_pending(self, user_id: str) -> Optional[CartAggregate]:
        carts = await self.list_pending(user_id)
        return carts[0] if carts else None

    async def list_pending(self, user_id: str) -> List[CartAggregate]:
        """All pending carts of the user, oldest first"""
        result = await self._session.execute(
            select(orders_tbl)
            .where(orders_tbl.c.user_id == user_id, orders_tbl.c.status == OrderStatus.PENDING)
            .order_by(orders_tbl.c.created_at.asc(), orders_tbl.c.id.asc())
        )
        rows = result.fetchall()
        if not rows:
            return []

        items = await self._load_items([row.id for row in rows])
        return [
            CartAggregate(
                id=row.id,
                user_id=row.user_id,
                items=items.get(row.id, []),
                created_at=row.created_at
            )
            for row in rows
        ]

    async def create_pending(self, user_id: str) -> CartAggregate:
        now = _now()
        cart = CartAggregate(id=str(uuid.uuid4()), user_id=user_id, items=[], created_at=now)
        stmt = insert(orders_tbl).values(
            id=cart.id,
            user_id=user_id,
            status=OrderStatus.PENDING,
            subtotal=0,
            shipping_fee=0,
            tax=0,
            total=0,
            created_at=now,
            updated_at=now
        )
        try:
            await self._session.execute(stmt)
        except IntegrityError as e:
            # Another request created the user's cart first
            raise CartConflictError(f"Pending cart for {user_id} already exists") from e
        return cart

    async def get_or_create_pending(self, user_id: str) -> CartAggregate:
        cart = await self.find_pending(user_id)
        if cart:
            return cart
        return await self.create_pending(user_id)

    async def add_line(self, cart_id: str, product_id: str, quantity: int, unit_price: Decimal) -> LineItem:
        item = LineItem(id=str(uuid.uuid4()), product_id=product_id, quantity=quantity, unit_price=unit_price)
        stmt = insert(order_items_tbl).values(
            id=item.id,
            order_id=cart_id,
            product_id=product_id,
            quantity=quantity,
            unit_price=unit_price,
            created_at=_now()
        )
        try:
            await self._session.execute(stmt)
        except IntegrityError as e:
            raise CartConflictError(f"Line for {product_id} already exists in cart {cart_id}") from e
        return item

    async def increment_line(self, line_id: str, by: int) -> None:
        # Increment in SQL so concurrent adds are not lost
        stmt = (
            update(order_items_tbl)
            .where(order_items_tbl.c.id == line_id)
            .values(quantity=order_items_tbl.c.quantity + by)
        )
        await self._session.execute(stmt)

    async def set_line_quantity(self, line_id: str, quantity: int) -> None:
        stmt = (
            update(order_items_tbl)
            .where(order_items_tbl.c.id == line_id)
            .values(quantity=quantity)
        )
        await self._session.execute(stmt)

    async def delete_line(self, line_id: str) -> None:
        await self._session.execute(
            delete(order_items_tbl).where(order_items_tbl.c.id == line_id)
        )

    async def move_line(self, line_id: str, cart_id: str) -> None:
        stmt = (
            update(order_items_tbl)
            .where(order_items_tbl.c.id == line_id)
            .values(order_id=cart_id)
        )
        await self._session.execute(stmt)

    async def delete_carts(self, cart_ids: List[str]) -> None:
        if not cart_ids:
            return
        await self._session.execute(
            delete(order_items_tbl).where(order_items_tbl.c.order_id.in_(cart_ids))
        )
        await self._session.execute(
            delete(orders_tbl).where(
                orders_tbl.c.id.in_(cart_ids),
                orders_tbl.c.status == OrderStatus.PENDING
            )
        )

    async def _load_items(self, cart_ids: List[str]) -> dict[str, List[LineItem]]:
        result = await self._session.execute(
            select(order_items_tbl)
            .where(order_items_tbl.c.order_id.in_(cart_ids))
            .order_by(order_items_tbl.c.created_at.asc())
        )
        items: dict[str, List[LineItem]] = {}
        for row in result.fetchall():
            items.setdefault(row.order_id, []).append(_to_line_item(row))
        return items


class SQLAlchemyOrderRepository(OrderRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_latest_order_number(self) -> Optional[str]:
        result = await self._session.execute(
            select(orders_tbl.c.order_number)
            .where(orders_tbl.c.order_number.is_not(None))
            .order_by(orders_tbl.c.created_at.desc(), orders_tbl.c.order_number.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def create(self, order: ConfirmedOrder) -> None:
        stmt = insert(orders_tbl).values(
            id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            status=order.status,
            payment_status=order.payment_status,
            subtotal=order.subtotal,
            shipping_fee=order.shipping_fee,
            tax=order.tax,
            total=order.total,
            shipping_address=order.shipping_address.model_dump() if order.shipping_address else None,
            payment_id=order.payment_id,
            gateway_order_id=order.gateway_order_id,
            created_at=order.created_at,
            updated_at=order.updated_at
        )
        try:
            await self._session.execute(stmt)
        except IntegrityError as e:
            if "order_number" in str(e.orig):
                raise OrderIdConflictError(order.order_number) from e
            if "payment_id" in str(e.orig) or "gateway_order_id" in str(e.orig):
                raise PaymentAlreadyUsedError(order.payment_id or order.gateway_order_id) from e
            raise PersistenceError(f"Could not store order {order.order_number}") from e

        if not order.items:
            return
        await self._session.execute(
            insert(order_items_tbl),
            [
                {
                    "id": str(uuid.uuid4()),
                    "order_id": order.id,
                    "product_id": line.product_id,
                    "quantity": line.quantity,
                    "unit_price": line.unit_price,
                    "created_at": order.created_at
                }
                for line in order.items
            ]
        )

    async def get_by_id(self, order_id: str) -> Optional[ConfirmedOrder]:
        result = await self._session.execute(
            select(orders_tbl).where(
                orders_tbl.c.id == order_id,
                orders_tbl.c.order_number.is_not(None)
            )
        )
        row = result.fetchone()
        return await self._to_domain(row) if row else None

    async def is_payment_used(self, payment_id: str, gateway_order_id: str) -> bool:
        result = await self._session.execute(
            select(orders_tbl.c.id)
            .where(or_(orders_tbl.c.payment_id == payment_id, orders_tbl.c.gateway_order_id == gateway_order_id))
            .limit(1)
        )
        return result.first() is not None

    async def get_by_gateway_order_id(self, gateway_order_id: str) -> Optional[ConfirmedOrder]:
        result = await self._session.execute(
            select(orders_tbl).where(orders_tbl.c.gateway_order_id == gateway_order_id)
        )
        row = result.fetchone()
        return await self._to_domain(row) if row else None

    async def list_for_user(self, user_id: str) -> List[ConfirmedOrder]:
        result = await self._session.execute(
            select(orders_tbl)
            .where(orders_tbl.c.user_id == user_id, orders_tbl.c.order_number.is_not(None))
            .order_by(orders_tbl.c.created_at.desc())
        )
        return [await self._to_domain(row) for row in result.fetchall()]

    async def update_status(self, order_id: str, status: OrderStatus, **fields) -> None:
        stmt = (
            update(orders_tbl)
            .where(orders_tbl.c.id == order_id)
            .values(status=status, updated_at=_now(), **fields)
        )
        await self._session.execute(stmt)

    async def update_payment(
        self,
        order_id: str,
        payment_status: PaymentStatus,
        payment_id: Optional[str] = None,
        gateway_order_id: Optional[str] = None
    ) -> None:
        values = {"payment_status": payment_status, "updated_at": _now()}
        if payment_id is not None:
            values["payment_id"] = payment_id
        if gateway_order_id is not None:
            values["gateway_order_id"] = gateway_order_id
        try:
            await self._session.execute(
                update(orders_tbl).where(orders_tbl.c.id == order_id).values(**values)
            )
        except IntegrityError as e:
            raise PaymentAlreadyUsedError(payment_id or gateway_order_id) from e

    async def _to_domain(self, row) -> ConfirmedOrder:
        """DB → Domain, with product names joined for display"""
        result = await self._session.execute(
            select(order_items_tbl, products_tbl.c.name.label("product_name"))
            .select_from(
                order_items_tbl.outerjoin(products_tbl, products_tbl.c.id == order_items_tbl.c.product_id)
            )
            .where(order_items_tbl.c.order_id == row.id)
            .order_by(order_items_tbl.c.created_at.asc(), order_items_tbl.c.product_id.asc())
        )
        lines = [
            OrderLine(
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price=item.unit_price,
                product_name=item.product_name
            )
            for item in result.fetchall()
        ]
        return ConfirmedOrder(
            id=row.id,
            order_number=row.order_number,
            user_id=row.user_id,
            status=OrderStatus(row.status),
            payment_status=PaymentStatus(row.payment_status),
            items=lines,
            subtotal=row.subtotal,
            shipping_fee=row.shipping_fee,
            tax=row.tax,
            total=row.total,
            shipping_address=ShippingInfo(**row.shipping_address) if row.shipping_address else None,
            payment_id=row.payment_id,
            gateway_order_id=row.gateway_order_id,
            tracking_link=row.tracking_link,
            admin_message=row.admin_message,
            created_at=row.created_at,
            updated_at=row.updated_at
        )


class SQLAlchemyProductRepository(ProductRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, product_id: str) -> Optional[Product]:
        result = await self._session.execute(
            select(products_tbl).where(products_tbl.c.id == product_id)
        )
        row = result.fetchone()
        return Product(id=row.id, name=row.name, price=row.price) if row else None

    async def get_many(self, product_ids: List[str]) -> dict[str, Product]:
        if not product_ids:
            return {}
        result = await self._session.execute(
            select(products_tbl).where(products_tbl.c.id.in_(product_ids))
        )
        return {
            row.id: Product(id=row.id, name=row.name, price=row.price)
            for row in result.fetchall()
        }


class SQLAlchemyOutboxRepository(OutboxRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, event_type: str, event_data: dict, aggregate_id: str) -> str:
        event_id = str(uuid.uuid4())
        stmt = insert(outbox_events_tbl).values(
            id=event_id,
            event_type=event_type,
            event_data=event_data,
            aggregate_id=aggregate_id,
            status="pending",
            created_at=_now()
        )
        await self._session.execute(stmt)
        return event_id

    async def get_pending(self, limit: int = 10) -> List[dict]:
        result = await self._session.execute(
            select(outbox_events_tbl)
            .where(outbox_events_tbl.c.status == "pending")
            .order_by(outbox_events_tbl.c.created_at.asc())
            .limit(limit)
        )
        return [
            {
                "id": row.id,
                "event_type": row.event_type,
                "event_data": row.event_data,
                "aggregate_id": row.aggregate_id
            }
            for row in result.fetchall()
        ]

    async def mark_as_published(self, event_id: str) -> None:
        stmt = (
            update(outbox_events_tbl)
            .where(outbox_events_tbl.c.id == event_id)
            .values(status="published")
        )
        await self._session.execute(stmt)


class SQLAlchemyInboxRepository(InboxRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, event_type: str, event_data: dict, order_id: str, idempotency_key: str) -> str:
        event_id = str(uuid.uuid4())
        stmt = insert(inbox_events_tbl).values(
            id=event_id,
            event_type=event_type,
            event_data=event_data,
            order_id=order_id,
            idempotency_key=idempotency_key,
            status="pending",
            created_at=_now()
        )
        await self._session.execute(stmt)
        return event_id

    async def get_pending(self, limit: int = 10) -> List[dict]:
        result = await self._session.execute(
            select(inbox_events_tbl)
            .where(inbox_events_tbl.c.status == "pending")
            .order_by(inbox_events_tbl.c.created_at.asc())
            .limit(limit)
        )
        return [
            {
                "id": row.id,
                "event_type": row.event_type,
                "event_data": row.event_data,
                "order_id": row.order_id,
                "idempotency_key": row.idempotency_key
            }
            for row in result.fetchall()
        ]

    async def mark_as_processed(self, event_id: str) -> None:
        stmt = (
            update(inbox_events_tbl)
            .where(inbox_events_tbl.c.id == event_id)
            .values(status="processed", processed_at=_now())
        )
        await self._session.execute(stmt)

    async def mark_as_failed(self, event_id: str) -> None:
        stmt = (
            update(inbox_events_tbl)
            .where(inbox_events_tbl.c.id == event_id)
            .values(status="failed")
        )
        await self._session.execute(stmt)

    async def is_known(self, idempotency_key: str) -> bool:
        result = await self._session.execute(
            select(inbox_events_tbl.c.id)
            .where(inbox_events_tbl.c.idempotency_key == idempotency_key)
        )
        return result.fetchone() is not None


def _to_line_item(row) -> LineItem:
    return LineItem(
        id=row.id,
        product_id=row.product_id,
        quantity=row.quantity,
        unit_price=row.unit_price
    )
