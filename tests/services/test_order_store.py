# tests/services/test_order_store.py
import pytest
from sqlalchemy import func, select

from orderdesk.models.order_record import OrderRecord
from orderdesk.models.raw_order_event import RawOrderEvent
from orderdesk.services.errors import OrderNotFound
from orderdesk.services.order_normalizer import normalize
from orderdesk.services.order_store import OrderStore

pytestmark = pytest.mark.asyncio

EXAMPLE = {
    "order": {"number": "1001"},
    "customer": {"name": "A B", "email": "a@b.com"},
    "items": [{"sku": "X1", "qty": 2, "unitPrice": 50}],
}


async def _count(session) -> int:
    return (await session.execute(select(func.count()).select_from(OrderRecord))).scalar_one()


async def test_insert_fills_defaults_and_placeholder(session):
    store = OrderStore(session)
    r = await store.upsert(normalize(EXAMPLE))
    await session.commit()
    assert r.to_dict() == {"matched": 0, "modified": 0, "inserted": 1}

    row = await store.find_by_order_number("1001")
    assert row.channel == "wix"
    assert row.totals == {"grandTotal": 0, "shipping": 0, "discount": 0, "currency": "TRY"}
    assert row.items[0]["qty"] == 2
    assert row.items[0]["unitPrice"] == 50.0
    assert row.delivery["referenceIdPlaceholder"] == "WIX1001"
    assert row.delivery["stage"] == "REFERENCE_PLACEHOLDER"
    assert row.delivery["referenceId"] == ""
    assert row.customer == {"name": "A B", "email": "a@b.com", "phone": "", "address": ""}


async def test_same_payload_twice_is_idempotent(session):
    store = OrderStore(session)
    await store.upsert(normalize(EXAMPLE))
    await session.commit()

    r = await store.upsert(normalize(EXAMPLE))
    await session.commit()

    assert r.to_dict() == {"matched": 1, "modified": 0, "inserted": 0}
    assert await _count(session) == 1


async def test_absent_fields_never_erase_stored_values(session):
    store = OrderStore(session)
    await store.upsert(normalize(EXAMPLE))
    await session.commit()

    later = {"order": {"number": "1001", "buyerNote": "kapıya bırakın"}, "customer": {"phone": "0555"}}
    r = await store.upsert(normalize(later))
    await session.commit()
    assert (r.matched, r.modified) == (1, 1)

    row = await store.find_by_order_number("1001")
    assert row.customer["name"] == "A B"
    assert row.customer["email"] == "a@b.com"
    assert row.customer["phone"] == "0555"
    assert row.items[0]["sku"] == "X1"
    assert row.notes == "kapıya bırakın"


async def test_back_office_supplier_survives_reingestion(session):
    store = OrderStore(session)
    await store.upsert(normalize(EXAMPLE))
    await session.commit()

    row = await store.find_by_order_number("1001")
    row.supplier = {"name": "Atölye Kedi", "orderId": ""}
    await session.commit()

    payload = dict(EXAMPLE, supplier={"name": "Webhook Supplier", "orderId": "S-9"})
    await store.upsert(normalize(payload))
    await session.commit()

    row = await store.find_by_order_number("1001")
    assert row.supplier == {"name": "Atölye Kedi", "orderId": "S-9"}


async def test_carrier_resolved_delivery_fields_win(session):
    store = OrderStore(session)
    await store.upsert(normalize(EXAMPLE))
    await session.commit()

    row = await store.find_by_order_number("1001")
    await store.update_delivery(row, {"trackingNumber": "TRK-1", "referenceId": "WIX1001"})
    await session.commit()

    payload = {"order": {"number": "1001", "shippingInfo": {"trackingNumber": "STOREFRONT-9"}}}
    await store.upsert(normalize(payload))
    await session.commit()

    row = await store.find_by_order_number("1001")
    assert row.delivery["trackingNumber"] == "TRK-1"
    assert row.delivery["referenceId"] == "WIX1001"
    assert row.delivery["referenceIdPlaceholder"] == "WIX1001"


async def test_same_number_in_two_channels_are_two_orders(session):
    store = OrderStore(session)
    await store.upsert(normalize(EXAMPLE))
    await store.upsert(normalize(EXAMPLE, channel="etsy"))
    await session.commit()

    assert await _count(session) == 2
    etsy = await store.find_by_order_number("1001", channel="etsy")
    assert etsy.delivery["referenceIdPlaceholder"] == "ETSY1001"


async def test_find_unknown_order_raises(session):
    with pytest.raises(OrderNotFound):
        await OrderStore(session).find_by_order_number("nope")


async def test_list_trackable_skips_delivered_and_unreferenced(session):
    store = OrderStore(session)
    for n in ("1", "2", "3"):
        await store.upsert(normalize({"orderNumber": n}))
    await session.commit()

    await store.update_delivery(await store.find_by_order_number("2"), {"referenceId": "WIX2"})
    await store.update_delivery(
        await store.find_by_order_number("3"), {"trackingNumber": "T3", "stage": "DELIVERED"}
    )
    await session.commit()

    numbers = [r.order_number for r in await store.list_trackable()]
    assert numbers == ["2"]


async def test_archive_raw_event(session):
    ev = await OrderStore(session).archive_raw_event(channel="wix", reason="missing orderNumber", payload={"x": 1})
    await session.commit()
    assert ev.id is not None
    stored = (await session.execute(select(RawOrderEvent))).scalars().one()
    assert stored.payload == {"x": 1}
