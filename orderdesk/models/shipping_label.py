# orderdesk/models/shipping_label.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from orderdesk.db.base import Base


class ShippingLabel(Base):
    """Carrier label blob (base64), referenced from orders.delivery.labelId."""

    __tablename__ = "shipping_labels"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_id: Mapped[int | None] = mapped_column(
        ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, index=True
    )
    reference_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    label_format: Mapped[str] = mapped_column(String(16), nullable=False, default="PDF")
    paper_size: Mapped[str] = mapped_column(String(16), nullable=False, default="A6")
    file_name: Mapped[str] = mapped_column(String(128), nullable=False)
    content_b64: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<ShippingLabel id={self.id} ref={self.reference_id!r} {self.label_format}/{self.paper_size}>"
