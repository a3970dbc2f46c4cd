from sqlalchemy import (
    Table, Column, String, Integer, Numeric, Boolean, DateTime, JSON, MetaData, ForeignKey, UniqueConstraint, Index
)
from sqlalchemy.sql import func

metadata = MetaData()


carts_tbl = Table(
    "carts",
    metadata,
    Column("id", String, primary_key=True),
    Column("version", Integer, nullable=False, default=1),
    Column("created_at", DateTime(timezone=True), server_default=func.now())
)


cart_items_tbl = Table(
    "cart_items",
    metadata,
    Column("id", String, primary_key=True),
    Column("cart_id", String, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("product_id", String, nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("price_at_purchase", Numeric(18, 2), nullable=False),
    Column("position", Integer, nullable=False, default=0),
    UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product")
)


orders_tbl = Table(
    "orders",
    metadata,
    Column("id", String, primary_key=True),
    Column("version", Integer, nullable=False, default=1),
    Column("status", String(50), nullable=False, default="Pending"),
    Column("created_at", DateTime(timezone=True), server_default=func.now(), index=True)
)


# Квитанция покупки хранится в колонках purchase_* (NULL в purchase_success: квитанции нет)
order_items_tbl = Table(
    "order_items",
    metadata,
    Column("id", String, primary_key=True),
    Column("order_id", String, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("product_id", String, nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("price_at_purchase", Numeric(18, 2), nullable=False),
    Column("position", Integer, nullable=False, default=0),
    Column("purchase_transaction_id", String, nullable=True),
    Column("purchase_external_id", String, nullable=True),
    Column("purchase_confirmation_code", String, nullable=True),
    Column("purchase_amount", Numeric(18, 2), nullable=True),
    Column("purchase_currency", String(10), nullable=True),
    Column("purchase_timestamp", DateTime(timezone=True), nullable=True),
    Column("purchase_provider", String, nullable=True),
    Column("purchase_success", Boolean, nullable=True),
    Column("purchase_message", String, nullable=True)
)


checkouts_tbl = Table(
    "checkouts",
    metadata,
    Column("id", String, primary_key=True),
    Column("cart_id", String, nullable=False, index=True),
    Column("cart_version", Integer, nullable=False),
    Column("status", String(32), nullable=False, default="purchasing"),
    Column("purchased", JSON, nullable=False),
    Column("owed", JSON, nullable=False),
    Column("failed_product_id", String, nullable=True),
    Column("error", String, nullable=True),
    Column("order_id", String, nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now()),
    Index("ix_checkouts_status_updated_at", "status", "updated_at")
)
