# tests/services/test_order_ingest_service.py
import pytest
from sqlalchemy import select

from orderdesk.models.raw_order_event import RawOrderEvent
from orderdesk.services.errors import MissingIdentifier
from orderdesk.services.order_ingest_service import OrderIngestService
from orderdesk.services.order_store import OrderStore

pytestmark = pytest.mark.asyncio

WIX = {
    "data": {
        "order": {
            "number": "10042",
            "buyerInfo": {"email": "a@b.com"},
            "lineItems": [{"sku": "X1", "quantity": 1, "price": {"amount": "100.00"}}],
        }
    }
}


async def test_ingest_then_repost_is_unchanged(session):
    first = await OrderIngestService.ingest(session, WIX)
    assert first == {"orderNumber": "10042", "channel": "wix", "matched": 0, "modified": 0, "inserted": 1}

    again = await OrderIngestService.ingest(session, WIX)
    assert again == {"orderNumber": "10042", "channel": "wix", "matched": 1, "modified": 0, "inserted": 0}


async def test_explicit_channel_and_currency(session):
    out = await OrderIngestService.ingest(
        session, {"orderNumber": "A-1"}, channel="Shopify", default_currency="EUR"
    )
    assert out["channel"] == "shopify"

    row = await OrderStore(session).find_by_order_number("A-1", "shopify")
    assert row.totals["currency"] == "EUR"
    assert row.delivery["referenceIdPlaceholder"] == "SHOPIFYA-1"


async def test_missing_number_is_archived_and_rejected(session):
    with pytest.raises(MissingIdentifier):
        await OrderIngestService.ingest(session, {"customer": {"email": "a@b.com"}})

    events = (await session.execute(select(RawOrderEvent))).scalars().all()
    assert len(events) == 1
    assert events[0].channel == "wix"
    assert events[0].reason == "missing orderNumber"
    assert events[0].payload == {"customer": {"email": "a@b.com"}}
