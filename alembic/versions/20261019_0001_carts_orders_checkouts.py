"""carts, orders, checkouts

Revision ID: 0001
Revises:
Create Date: 2026-10-19 12:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "carts",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        "cart_items",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("cart_id", sa.String(), sa.ForeignKey("carts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.String(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price_at_purchase", sa.Numeric(18, 2), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product"),
    )
    op.create_index("ix_cart_items_cart_id", "cart_items", ["cart_id"])

    op.create_table(
        "orders",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(50), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_orders_created_at", "orders", ["created_at"])

    op.create_table(
        "order_items",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("order_id", sa.String(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.String(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price_at_purchase", sa.Numeric(18, 2), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("purchase_transaction_id", sa.String(), nullable=True),
        sa.Column("purchase_external_id", sa.String(), nullable=True),
        sa.Column("purchase_confirmation_code", sa.String(), nullable=True),
        sa.Column("purchase_amount", sa.Numeric(18, 2), nullable=True),
        sa.Column("purchase_currency", sa.String(10), nullable=True),
        sa.Column("purchase_timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.Column("purchase_provider", sa.String(), nullable=True),
        sa.Column("purchase_success", sa.Boolean(), nullable=True),
        sa.Column("purchase_message", sa.String(), nullable=True),
    )
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"])

    op.create_table(
        "checkouts",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("cart_id", sa.String(), nullable=False),
        sa.Column("cart_version", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("purchased", sa.JSON(), nullable=False),
        sa.Column("owed", sa.JSON(), nullable=False),
        sa.Column("failed_product_id", sa.String(), nullable=True),
        sa.Column("error", sa.String(), nullable=True),
        sa.Column("order_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_checkouts_cart_id", "checkouts", ["cart_id"])
    op.create_index("ix_checkouts_status_updated_at", "checkouts", ["status", "updated_at"])


def downgrade() -> None:
    op.drop_table("checkouts")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("cart_items")
    op.drop_table("carts")
