# orderdesk/services/order_normalizer.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from orderdesk.services.errors import MissingIdentifier
from orderdesk.services.order_paths import FieldRule, as_list, first_value, get_path
from orderdesk.services.order_types import (
    CanonicalOrder,
    Customer,
    DeliveryHints,
    LineItem,
    Payment,
    Totals,
)
from orderdesk.services.order_utils import clean_str, to_number

log = logging.getLogger("orderdesk.normalizer")

# Envelopes in precedence order; "" is the payload itself.
ENVELOPES: Tuple[str, ...] = (
    "order",
    "data.order",
    "data",
    "payload.order",
    "payload",
    "entity",
    "actionEvent.body.order",
    "",
)

ADDRESS_SEPARATOR = ", "

ORDER_NUMBER = FieldRule(
    "orderNumber",
    ("number", "orderNumber", "order_number", "orderNo", "order_no", "id", "_id"),
)
CHANNEL = FieldRule("channel", ("channel", "salesChannel"))
CREATED_AT = FieldRule(
    "createdAt",
    ("createdDate", "createdAt", "dateCreated", "created_at", "purchasedDate"),
    kind="datetime",
)

CUSTOMER_NAME = FieldRule(
    "customer.name",
    (
        "buyer.fullName",
        "buyer.name",
        "buyerInfo.fullName",
        "customer.name",
        "customer.fullName",
        "shippingInfo.recipient.name",
        "shippingInfo.logistics.shippingDestination.contactDetails.fullName",
        "billingInfo.contactDetails.fullName",
        "contact.fullName",
    ),
)
# (first, last) pairs composed when no full name exists
CUSTOMER_NAME_PARTS: Tuple[Tuple[str, str], ...] = (
    ("buyerInfo.firstName", "buyerInfo.lastName"),
    ("customer.firstName", "customer.lastName"),
    ("customer.name.first", "customer.name.last"),
    (
        "shippingInfo.logistics.shippingDestination.contactDetails.firstName",
        "shippingInfo.logistics.shippingDestination.contactDetails.lastName",
    ),
    ("billingInfo.contactDetails.firstName", "billingInfo.contactDetails.lastName"),
    ("contact.name.first", "contact.name.last"),
)
CUSTOMER_EMAIL = FieldRule(
    "customer.email",
    (
        "buyer.email",
        "buyerInfo.email",
        "customer.email",
        "contact.email",
        "buyerEmail",
        "billingInfo.contactDetails.email",
        "email",
    ),
)
CUSTOMER_PHONE = FieldRule(
    "customer.phone",
    (
        "buyer.phone",
        "buyerInfo.phone",
        "customer.phone",
        "contact.phone",
        "shippingInfo.recipient.phone",
        "shippingInfo.phone",
        "shippingInfo.logistics.shippingDestination.contactDetails.phone",
        "shippingInfo.destination.contactDetails.phone",
        "shippingInfo.contactDetails.phone",
        "billingInfo.contactDetails.phone",
        "phone",
    ),
)
ADDRESS_FORMATTED = FieldRule(
    "customer.address",
    (
        "shippingInfo.shippingAddress.formattedAddress",
        "shippingInfo.address.formattedAddressLine",
        "shippingInfo.destination.address.formattedAddressLine",
        "shippingInfo.logistics.shippingDestination.address.formattedAddressLine",
        "shippingInfo.logistics.shippingDestination.address.formatted",
        "contact.address.formattedAddress",
        "billingInfo.address.formattedAddressLine",
        "customer.address.formatted",
        "customer.address",
        "address.formatted",
        "address",
    ),
)
ADDRESS_OBJECTS: Tuple[str, ...] = (
    "shippingInfo.shippingAddress",
    "shippingInfo.logistics.shippingDestination.address",
    "shippingInfo.logistics.address",
    "shippingInfo.destination.address",
    "shippingInfo.address",
    "billingInfo.address",
    "contact.address",
    "customer.address",
    "address",
)
ADDRESS_STREET = ("addressLine", "addressLine1", "line1", "street", "streetAddress.name")
ADDRESS_STREET_2 = ("addressLine2", "line2", "streetAddress.number")
ADDRESS_CITY = ("city", "town")
ADDRESS_SUBDIVISION = ("subdivisionFullname", "subdivision", "district", "state", "province")
ADDRESS_POSTAL = ("postalCode", "postcode", "zip", "zipCode")
ADDRESS_COUNTRY = ("countryFullname", "country")

ITEMS = ("lineItems", "items", "line_items", "orderItems")
ITEM_SKU = FieldRule(
    "sku", ("sku", "physicalProperties.sku", "catalogReference.catalogItemId", "code", "id")
)
ITEM_NAME = FieldRule(
    "name",
    ("name", "productName.original", "productName.translated", "productName", "title", "description"),
)
ITEM_QTY = FieldRule("qty", ("quantity", "qty", "count"), kind="raw")
ITEM_UNIT_PRICE = FieldRule(
    "unitPrice",
    ("priceData.price", "unitPrice", "price", "itemPrice", "priceBeforeTax", "basePrice"),
    kind="number",
)
ITEM_LINE_TOTAL = FieldRule(
    "lineTotal",
    (
        "priceData.totalPrice",
        "totalPrice",
        "totalPriceAfterTax",
        "totalPriceBeforeTax",
        "lineTotal",
        "total",
    ),
    kind="number",
)
ITEM_OPTION_SOURCES = (
    "options",
    "modifiers",
    "descriptionLines",
    "productOptions",
    "selectedOptions",
    "customTextFields",
    "variants",
)
OPTION_LABEL = ("name.original", "name.translated", "name", "title", "label", "option", "key", "optionName")
OPTION_VALUE = (
    "plainText.original",
    "plainText.translated",
    "value",
    "selection",
    "text",
    "description",
    "optionValue",
    "colorInfo.original",
    "color",
)

# Semantic slots, checked in this order; keywords cover Turkish and English labels.
# altSize precedes size so "Canvas Size" / "Tablo Boyutu" land in altSize.
VARIANT_SLOTS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("altSize", ("tablo", "canvas", "portrait", "portre", "poster")),
    ("size", ("beden", "size", "boyut", "talla")),
    ("gender", ("cinsiyet", "gender", "sex")),
    ("color", ("renk", "color", "colour")),
    ("model", ("telefon", "phone", "model", "materyal", "material", "malzeme", "kumaş", "fabric")),
)

GRAND_TOTAL = FieldRule(
    "totals.grandTotal",
    (
        "priceSummary.total",
        "totals.total",
        "totals.grandTotal",
        "totalPrice",
        "orderTotal",
        "grandTotal",
        "total",
    ),
    kind="number",
)
SHIPPING = FieldRule(
    "totals.shipping",
    ("priceSummary.shipping", "totals.shipping", "shippingInfo.price", "shippingPrice"),
    kind="number",
)
DISCOUNT = FieldRule(
    "totals.discount",
    ("priceSummary.discount", "totals.discount", "discount"),
    kind="number",
)
CURRENCY = FieldRule(
    "totals.currency",
    (
        "currency",
        "totals.currency",
        "priceSummary.total.currency",
        "priceSummary.subtotal.currency",
        "currencyCode",
    ),
)
PAYMENT_METHOD = FieldRule(
    "payment.method",
    (
        "paymentMethod",
        "paymentInfo.method",
        "paymentDetails.method",
        "payment.method",
        "payments.0.method",
        "priceSummary.paymentMethod",
    ),
)
PAYMENT_STATUS = FieldRule(
    "payment.status", ("paymentStatus", "financialStatus", "payment.status")
)
COURIER = FieldRule(
    "delivery.courier",
    ("shippingInfo.carrier", "delivery.courier", "fulfillments.0.trackingInfo.shippingProvider"),
)
TRACKING_NUMBER = FieldRule(
    "delivery.trackingNumber",
    (
        "shippingInfo.trackingNumber",
        "trackingInfo.number",
        "delivery.trackingNumber",
        "fulfillments.0.trackingInfo.trackingNumber",
    ),
)
CARRIER_STATUS = FieldRule("delivery.carrierStatus", ("fulfillmentStatus", "delivery.status"))
NOTES = FieldRule("notes", ("buyerNote", "notes", "note", "customerNote"))
SUPPLIER = FieldRule("supplier", ("supplier",), kind="raw")


def select_envelope(payload: Any) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    First envelope (fixed precedence) that carries an order number.
    Returns (envelope, order_number) or (None, None).
    """
    if not isinstance(payload, dict):
        return None, None
    for env in ENVELOPES:
        candidate = get_path(payload, env) if env else payload
        if not isinstance(candidate, dict):
            continue
        number = ORDER_NUMBER.extract([candidate])
        if number is not None:
            return candidate, number
    return None, None


def format_address(contexts: Sequence[Any]) -> Optional[str]:
    """
    Pre-formatted address string if the source has one; otherwise
    street, city, subdivision, postal code, country joined by ADDRESS_SEPARATOR.
    """
    formatted = ADDRESS_FORMATTED.extract(contexts)
    if formatted is not None:
        return formatted

    for ctx in contexts:
        for path in ADDRESS_OBJECTS:
            obj = get_path(ctx, path)
            if not isinstance(obj, dict):
                continue
            street = " ".join(
                p
                for p in (
                    first_value([obj], ADDRESS_STREET),
                    first_value([obj], ADDRESS_STREET_2),
                )
                if p
            )
            parts = [
                street,
                first_value([obj], ADDRESS_CITY),
                first_value([obj], ADDRESS_SUBDIVISION),
                first_value([obj], ADDRESS_POSTAL),
                first_value([obj], ADDRESS_COUNTRY),
            ]
            parts = [p for p in parts if p]
            if parts:
                return ADDRESS_SEPARATOR.join(parts)
    return None


def _customer_name(contexts: Sequence[Any]) -> Optional[str]:
    name = CUSTOMER_NAME.extract(contexts)
    if name is not None:
        return name
    for ctx in contexts:
        for first_path, last_path in CUSTOMER_NAME_PARTS:
            full = " ".join(
                p for p in (clean_str(get_path(ctx, first_path)), clean_str(get_path(ctx, last_path))) if p
            )
            if full:
                return full
    return None


def _option_entries(item: Dict[str, Any]) -> List[Tuple[str, str]]:
    """(label, value) pairs from every option-like structure of a line item."""
    out: List[Tuple[str, str]] = []
    for src in ITEM_OPTION_SOURCES:
        raw = item.get(src)
        if isinstance(raw, dict) and not any(k in raw for k in OPTION_LABEL):
            # mapping form: {"Size": "M", "Color": "Red"}
            for k, v in raw.items():
                label, value = clean_str(k), clean_str(v)
                if label and value:
                    out.append((label, value))
            continue
        for entry in as_list(raw):
            if not isinstance(entry, dict):
                continue
            label = first_value([entry], OPTION_LABEL)
            value = first_value([entry], OPTION_VALUE)
            if label and value:
                out.append((label, value))
    return out


def match_variants(entries: Sequence[Tuple[str, str]]) -> Dict[str, str]:
    """
    Case-insensitive substring match of option labels against the semantic slots.
    First match wins per slot; unmatched labels are kept under their own name.
    """
    variants: Dict[str, str] = {}
    extras: Dict[str, str] = {}
    for label, value in entries:
        low = label.casefold()
        slot = next(
            (name for name, keywords in VARIANT_SLOTS if any(k in low for k in keywords)),
            None,
        )
        if slot is None:
            extras.setdefault(label, value)
        elif slot not in variants:
            variants[slot] = value
    for label, value in extras.items():
        variants.setdefault(label, value)
    return variants


def normalize_line_item(raw: Dict[str, Any]) -> LineItem:
    qty_raw = to_number(ITEM_QTY.extract([raw]))
    qty = int(qty_raw) if qty_raw is not None and qty_raw >= 1 else 1

    unit_price = ITEM_UNIT_PRICE.extract([raw])
    if unit_price is not None and unit_price < 0:
        unit_price = None
    if unit_price is None:
        line_total = ITEM_LINE_TOTAL.extract([raw])
        # derive from the line total only with a real positive quantity
        if line_total is not None and qty_raw is not None and qty_raw > 0:
            derived = line_total / qty_raw
            unit_price = derived if derived >= 0 else None

    return LineItem(
        sku=ITEM_SKU.extract([raw]) or "",
        name=ITEM_NAME.extract([raw]) or "",
        qty=qty,
        unit_price=unit_price,
        variants=match_variants(_option_entries(raw)),
    )


def _items(contexts: Sequence[Any]) -> Optional[List[LineItem]]:
    for ctx in contexts:
        if not isinstance(ctx, dict):
            continue
        for key in ITEMS:
            if key not in ctx:
                continue
            rows = [r for r in as_list(ctx.get(key)) if isinstance(r, dict)]
            if rows:
                return [normalize_line_item(r) for r in rows]
    return None


def normalize(payload: Any, *, channel: Optional[str] = None, default_channel: str = "wix") -> CanonicalOrder:
    """
    Arbitrary inbound payload → CanonicalOrder.

    Only the order number is required (MissingIdentifier otherwise); every other
    field is probed envelope-first, then on the root payload, and is None when absent.
    """
    envelope, number = select_envelope(payload)
    if envelope is None or number is None:
        raise MissingIdentifier()

    contexts: List[Any] = [envelope]
    if envelope is not payload:
        contexts.append(payload)

    chan = (channel or CHANNEL.extract(contexts) or default_channel).strip().lower()

    currency = CURRENCY.extract(contexts)
    supplier = SUPPLIER.extract(contexts)

    order = CanonicalOrder(
        order_number=number,
        channel=chan,
        created_at=CREATED_AT.extract(contexts),
        customer=Customer(
            name=_customer_name(contexts),
            email=CUSTOMER_EMAIL.extract(contexts),
            phone=CUSTOMER_PHONE.extract(contexts),
            address=format_address(contexts),
        ),
        items=_items(contexts),
        totals=Totals(
            grand_total=GRAND_TOTAL.extract(contexts),
            shipping=SHIPPING.extract(contexts),
            discount=DISCOUNT.extract(contexts),
            currency=currency.upper() if currency else None,
        ),
        payment=Payment(
            method=PAYMENT_METHOD.extract(contexts),
            status=PAYMENT_STATUS.extract(contexts),
        ),
        delivery=DeliveryHints(
            courier=COURIER.extract(contexts),
            tracking_number=TRACKING_NUMBER.extract(contexts),
            carrier_status=CARRIER_STATUS.extract(contexts),
        ),
        supplier=supplier if isinstance(supplier, dict) else None,
        notes=NOTES.extract(contexts),
        raw=payload if isinstance(payload, dict) else None,
    )
    log.debug(
        "normalized order %s:%s items=%s",
        order.channel,
        order.order_number,
        len(order.items) if order.items is not None else "-",
    )
    return order
