# orderdesk/services/order_types.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class DeliveryStage(str, Enum):
    NEW = "NEW"
    REFERENCE_PLACEHOLDER = "REFERENCE_PLACEHOLDER"
    REFERENCE_ASSIGNED = "REFERENCE_ASSIGNED"
    LABEL_PRINTED = "LABEL_PRINTED"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    UNKNOWN = "UNKNOWN"

    @property
    def rank(self) -> int:
        return _STAGE_RANK[self]

    @classmethod
    def parse(cls, value: Any) -> "DeliveryStage":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").upper())
        except ValueError:
            return cls.NEW


# UNKNOWN sits beside NEW: nothing resolvable yet
_STAGE_RANK = {
    DeliveryStage.NEW: 0,
    DeliveryStage.UNKNOWN: 0,
    DeliveryStage.REFERENCE_PLACEHOLDER: 1,
    DeliveryStage.REFERENCE_ASSIGNED: 2,
    DeliveryStage.LABEL_PRINTED: 3,
    DeliveryStage.IN_TRANSIT: 4,
    DeliveryStage.DELIVERED: 5,
}


def placeholder_reference(channel: str, order_number: str) -> str:
    """Deterministic pre-carrier reference: WIX1001."""
    return f"{(channel or '').strip().upper()}{(order_number or '').strip()}"


def _drop_none(d: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in d.items() if v is not None}


@dataclass
class Customer:
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None

    def found(self) -> Dict[str, Any]:
        return _drop_none(
            {"name": self.name, "email": self.email, "phone": self.phone, "address": self.address}
        )

    def with_defaults(self) -> Dict[str, str]:
        return {
            "name": self.name or "",
            "email": self.email or "",
            "phone": self.phone or "",
            "address": self.address or "",
        }


@dataclass
class LineItem:
    sku: str = ""
    name: str = ""
    qty: int = 1
    unit_price: Optional[float] = None
    variants: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sku": self.sku,
            "name": self.name,
            "qty": self.qty,
            "unitPrice": self.unit_price,
            "variants": dict(self.variants),
        }


@dataclass
class Totals:
    grand_total: Optional[float] = None
    shipping: Optional[float] = None
    discount: Optional[float] = None
    currency: Optional[str] = None

    def found(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "grandTotal": self.grand_total,
                "shipping": self.shipping,
                "discount": self.discount,
                "currency": self.currency,
            }
        )

    def with_defaults(self, default_currency: str) -> Dict[str, Any]:
        return {
            "grandTotal": self.grand_total if self.grand_total is not None else 0,
            "shipping": self.shipping if self.shipping is not None else 0,
            "discount": self.discount if self.discount is not None else 0,
            "currency": self.currency or default_currency,
        }


@dataclass
class Payment:
    method: Optional[str] = None
    status: Optional[str] = None

    def found(self) -> Dict[str, Any]:
        return _drop_none({"method": self.method, "status": self.status})

    def with_defaults(self) -> Dict[str, str]:
        return {"method": self.method or "", "status": self.status or ""}


@dataclass
class DeliveryHints:
    """Delivery facts the storefront itself may already know."""

    courier: Optional[str] = None
    tracking_number: Optional[str] = None
    carrier_status: Optional[str] = None

    def found(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "courier": self.courier,
                "trackingNumber": self.tracking_number,
                "carrierStatus": self.carrier_status,
            }
        )


@dataclass
class CanonicalOrder:
    """
    Normalizer output. None means "not found in this payload"; the store fills
    defaults on insert and leaves stored values alone on update.
    """

    order_number: str
    channel: str
    created_at: Optional[datetime] = None
    customer: Customer = field(default_factory=Customer)
    items: Optional[List[LineItem]] = None
    totals: Totals = field(default_factory=Totals)
    payment: Payment = field(default_factory=Payment)
    delivery: DeliveryHints = field(default_factory=DeliveryHints)
    supplier: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None
    raw: Optional[Dict[str, Any]] = None

    @property
    def placeholder(self) -> str:
        return placeholder_reference(self.channel, self.order_number)


def initial_delivery(order: CanonicalOrder) -> Dict[str, Any]:
    """
    Delivery sub-record written on insert: NEW → REFERENCE_PLACEHOLDER.
    Storefront delivery hints seed the matching keys.
    """
    hints = order.delivery
    return {
        "stage": DeliveryStage.REFERENCE_PLACEHOLDER.value,
        "courier": hints.courier or "",
        "referenceIdPlaceholder": order.placeholder,
        "referenceId": "",
        "trackingNumber": hints.tracking_number or "",
        "status": "",
        "carrierStatus": hints.carrier_status or "",
        "deliveredAt": None,
        "shippedAt": None,
        "labelId": None,
        "labelPrintedAt": None,
        "lastTrackedAt": None,
        "lastError": None,
    }


@dataclass(frozen=True)
class UpsertResult:
    matched: int
    modified: int
    inserted: int

    def to_dict(self) -> Dict[str, int]:
        return {"matched": self.matched, "modified": self.modified, "inserted": self.inserted}
