from sqlalchemy import (
    Table, Column, String, Integer, Numeric, Enum, DateTime, JSON, MetaData, ForeignKey,
    Index, UniqueConstraint, text
)
from sqlalchemy.sql import func

from storefront.domain.models import OrderStatus, PaymentStatus

metadata = MetaData()

PENDING_CART_INDEX = "uq_orders_pending_user_id"


products_tbl = Table(
    "products",
    metadata,
    Column("id", String, primary_key=True),
    Column("name", String, nullable=False),
    Column("price", Numeric(12, 2), nullable=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now())
)


# Carts are orders in PENDING status; confirmed orders additionally carry an order_number
orders_tbl = Table(
    "orders",
    metadata,
    Column("id", String, primary_key=True),
    Column("order_number", String, nullable=True),
    Column("user_id", String, nullable=False, index=True),
    Column("status", Enum(OrderStatus), nullable=False, default=OrderStatus.PENDING),
    Column("payment_status", Enum(PaymentStatus), nullable=True),
    Column("subtotal", Numeric(12, 2), nullable=False, default=0),
    Column("shipping_fee", Numeric(12, 2), nullable=False, default=0),
    Column("tax", Numeric(12, 2), nullable=False, default=0),
    Column("total", Numeric(12, 2), nullable=False, default=0),
    Column("shipping_address", JSON, nullable=True),
    Column("payment_id", String, nullable=True),
    Column("gateway_order_id", String, nullable=True),
    Column("tracking_link", String, nullable=True),
    Column("admin_message", String, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("order_number", name="uq_orders_order_number"),
    # One payment settles one order
    UniqueConstraint("payment_id", name="uq_orders_payment_id"),
    UniqueConstraint("gateway_order_id", name="uq_orders_gateway_order_id"),
    Index(
        PENDING_CART_INDEX,
        "user_id",
        unique=True,
        postgresql_where=text("status = 'PENDING'"),
        sqlite_where=text("status = 'PENDING'")
    )
)


order_items_tbl = Table(
    "order_items",
    metadata,
    Column("id", String, primary_key=True),
    Column("order_id", String, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("product_id", String, ForeignKey("products.id"), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("unit_price", Numeric(12, 2), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("order_id", "product_id", name="uq_order_items_order_product_id")
)


outbox_events_tbl = Table(
    "outbox_events",
    metadata,
    Column("id", String, primary_key=True),
    Column("event_type", String, nullable=False),
    Column("event_data", JSON, nullable=False),
    Column("aggregate_id", String, nullable=False),
    Column("status", String, default="pending"),
    Column("created_at", DateTime(timezone=True), nullable=False)
)


inbox_events_tbl = Table(
    "inbox_events",
    metadata,
    Column("id", String, primary_key=True),
    Column("event_type", String, nullable=False),
    Column("event_data", JSON, nullable=False),
    Column("order_id", String, nullable=False),
    Column("idempotency_key", String, unique=True, nullable=False),
    Column("status", String, default="pending"),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("processed_at", DateTime(timezone=True), nullable=True)
)
