"""initial orders / shipping_labels / raw_order_events

Revision ID: 0001_initial_orders
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "0001_initial_orders"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _json() -> sa.types.TypeEngine:
    return sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("channel", sa.String(length=32), nullable=False),
        sa.Column("order_number", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("first_seen_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("customer", _json(), nullable=False),
        sa.Column("items", _json(), nullable=False),
        sa.Column("totals", _json(), nullable=False),
        sa.Column("payment", _json(), nullable=False),
        sa.Column("delivery", _json(), nullable=False),
        sa.Column("supplier", _json(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=False),
        sa.Column("raw", _json(), nullable=True),
        sa.UniqueConstraint("channel", "order_number", name="uq_orders_channel_number"),
    )
    op.create_index("ix_orders_created_at", "orders", ["created_at"])
    op.create_index("ix_orders_order_number", "orders", ["order_number"])

    op.create_table(
        "shipping_labels",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="SET NULL"), nullable=True),
        sa.Column("reference_id", sa.String(length=64), nullable=False),
        sa.Column("label_format", sa.String(length=16), nullable=False),
        sa.Column("paper_size", sa.String(length=16), nullable=False),
        sa.Column("file_name", sa.String(length=128), nullable=False),
        sa.Column("content_b64", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_shipping_labels_order_id", "shipping_labels", ["order_id"])
    op.create_index("ix_shipping_labels_reference_id", "shipping_labels", ["reference_id"])

    op.create_table(
        "raw_order_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("channel", sa.String(length=32), nullable=False),
        sa.Column("reason", sa.String(length=64), nullable=False),
        sa.Column("payload", _json(), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("raw_order_events")
    op.drop_index("ix_shipping_labels_reference_id", table_name="shipping_labels")
    op.drop_index("ix_shipping_labels_order_id", table_name="shipping_labels")
    op.drop_table("shipping_labels")
    op.drop_index("ix_orders_order_number", table_name="orders")
    op.drop_index("ix_orders_created_at", table_name="orders")
    op.drop_table("orders")
