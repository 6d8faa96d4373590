# orderdesk/models/order_record.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List

from sqlalchemy import DateTime, Index, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from orderdesk.db.base import Base, JsonDoc


class OrderRecord(Base):
    """
    Canonical order (one row per channel + order number).

    - identity / audit fields are columns
    - customer / items / totals / payment / delivery / supplier / raw are JSON documents
    - created_at and first_seen_at are written on insert only
    """

    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("channel", "order_number", name="uq_orders_channel_number"),
        Index("ix_orders_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    channel: Mapped[str] = mapped_column(String(32), nullable=False)
    order_number: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    first_seen_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    customer: Mapped[Dict[str, Any]] = mapped_column(JsonDoc, nullable=False, default=dict)
    items: Mapped[List[Dict[str, Any]]] = mapped_column(JsonDoc, nullable=False, default=list)
    totals: Mapped[Dict[str, Any]] = mapped_column(JsonDoc, nullable=False, default=dict)
    payment: Mapped[Dict[str, Any]] = mapped_column(JsonDoc, nullable=False, default=dict)
    delivery: Mapped[Dict[str, Any]] = mapped_column(JsonDoc, nullable=False, default=dict)
    supplier: Mapped[Dict[str, Any]] = mapped_column(JsonDoc, nullable=False, default=dict)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    raw: Mapped[Dict[str, Any] | None] = mapped_column(JsonDoc, nullable=True)

    def __repr__(self) -> str:
        stage = (self.delivery or {}).get("stage")
        return f"<OrderRecord id={self.id} {self.channel}:{self.order_number} stage={stage}>"
