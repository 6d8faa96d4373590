# orderdesk/services/order_export.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence
from zoneinfo import ZoneInfo

from orderdesk.models.order_record import OrderRecord
from orderdesk.services.order_types import placeholder_reference
from orderdesk.services.order_utils import parse_dt, round_money, to_number

# Bump whenever HEADERS change; the back-office sheet keys columns by name.
EXPORT_SCHEMA_VERSION = "2024.1"

NO_DATA = "–"

HEADERS: Sequence[str] = (
    "Sipariş No",
    "Sipariş Tarihi",
    "Sipariş Kanalı",
    "Tedarikçi Adı",
    "Tedarikçi Sipariş No",
    "Tedarikçi Kargo Firması",
    "Tedarikçi Kargo Takip No",
    "Tedarikçiye Veriliş Tarihi",
    "Tedarikçiden Teslim Tarihi",
    "DHL Referans No",
    "Müşteri Adı",
    "Adres",
    "SKU",
    "Ürün",
    "Adet",
    "Birim Fiyat",
    "Ürün Toplam Fiyat",
    "Beden",
    "Cinsiyet",
    "Renk",
    "Telefon Modeli",
    "Tablo Boyutu",
    "Ödeme Yöntemi",
    "Kargo Ücreti",
    "Kargo Firması",
    "Kargo Takip No",
    "Kargoya Veriliş Tarihi",
    "Teslimat Durumu",
    "Teslimat Tarihi",
    "Sipariş Toplam Fiyat",
    "İndirim (₺)",
    "Para Birimi",
    "Notlar",
    "E-posta",
    "Telefon",
)

# variant slot → column
VARIANT_COLUMNS = {
    "size": "Beden",
    "gender": "Cinsiyet",
    "color": "Renk",
    "model": "Telefon Modeli",
    "altSize": "Tablo Boyutu",
}


@dataclass(frozen=True)
class ExportOptions:
    timezone: str = "Europe/Istanbul"
    default_courier: str = "MNG Kargo"
    default_payment_method: str = "paytr"
    default_currency: str = "TRY"


def text(v: Any) -> str:
    if v is None:
        return NO_DATA
    s = str(v).strip()
    return s or NO_DATA


def money(v: Any) -> Any:
    n = to_number(v)
    return round_money(n) if n is not None else NO_DATA


def fmt_date(v: Any, tz: ZoneInfo, pattern: str = "%Y-%m-%d") -> str:
    dt = parse_dt(v)
    return dt.astimezone(tz).strftime(pattern) if dt is not None else NO_DATA


def reference_of(record: OrderRecord) -> str:
    """Official carrier reference, else the placeholder, else no data."""
    d = record.delivery or {}
    ref = d.get("referenceId") or d.get("referenceIdPlaceholder")
    if not ref and record.order_number:
        ref = placeholder_reference(record.channel, record.order_number)
    return text(ref)


def flatten_order(record: OrderRecord, opts: ExportOptions) -> List[List[Any]]:
    """One row per line item; an order without items still yields one row."""
    tz = ZoneInfo(opts.timezone)
    customer = record.customer or {}
    totals = record.totals or {}
    payment = record.payment or {}
    delivery = record.delivery or {}
    supplier = record.supplier or {}

    head: Dict[str, Any] = {
        "Sipariş No": text(record.order_number),
        "Sipariş Tarihi": fmt_date(record.created_at, tz, "%Y-%m-%d %H:%M"),
        "Sipariş Kanalı": text(record.channel),
        "Tedarikçi Adı": text(supplier.get("name")),
        "Tedarikçi Sipariş No": text(supplier.get("orderId")),
        "Tedarikçi Kargo Firması": text(supplier.get("cargoCompany")),
        "Tedarikçi Kargo Takip No": text(supplier.get("cargoTrackingNo")),
        "Tedarikçiye Veriliş Tarihi": fmt_date(supplier.get("givenAt"), tz),
        "Tedarikçiden Teslim Tarihi": fmt_date(supplier.get("receivedAt"), tz),
        "DHL Referans No": reference_of(record),
        "Müşteri Adı": text(customer.get("name")),
        "Adres": text(customer.get("address")),
        "Ödeme Yöntemi": text(payment.get("method") or opts.default_payment_method),
        "Kargo Ücreti": money(totals.get("shipping")),
        "Kargo Firması": text(delivery.get("courier") or opts.default_courier),
        "Kargo Takip No": text(delivery.get("trackingNumber")),
        "Kargoya Veriliş Tarihi": fmt_date(delivery.get("shippedAt"), tz),
        "Teslimat Durumu": text(delivery.get("status") or delivery.get("carrierStatus")),
        "Teslimat Tarihi": fmt_date(delivery.get("deliveredAt"), tz),
        "Sipariş Toplam Fiyat": money(totals.get("grandTotal")),
        "İndirim (₺)": money(totals.get("discount")),
        "Para Birimi": text(totals.get("currency") or opts.default_currency),
        "Notlar": text(record.notes),
        "E-posta": text(customer.get("email")),
        "Telefon": text(customer.get("phone")),
    }

    items = [i for i in (record.items or []) if isinstance(i, dict)] or [None]
    rows: List[List[Any]] = []
    for item in items:
        cols = dict(head)
        cols.update(_item_columns(item))
        rows.append([cols.get(h, NO_DATA) for h in HEADERS])
    return rows


def _item_columns(item: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if item is None:
        return {}
    qty = to_number(item.get("qty"))
    unit = to_number(item.get("unitPrice"))
    line_total = round_money(unit * qty) if unit is not None and qty is not None else None
    variants = item.get("variants") or {}

    out: Dict[str, Any] = {
        "SKU": text(item.get("sku")),
        "Ürün": text(item.get("name")),
        "Adet": int(qty) if qty is not None else NO_DATA,
        "Birim Fiyat": round_money(unit) if unit is not None else NO_DATA,
        "Ürün Toplam Fiyat": line_total if line_total is not None else NO_DATA,
    }
    for slot, column in VARIANT_COLUMNS.items():
        out[column] = text(variants.get(slot))
    return out


def flatten_orders(records: Iterable[OrderRecord], opts: ExportOptions) -> Dict[str, Any]:
    rows: List[List[Any]] = []
    for r in records:
        rows.extend(flatten_order(r, opts))
    return {"version": EXPORT_SCHEMA_VERSION, "headers": list(HEADERS), "rows": rows}
