# tests/services/test_order_track_public.py
import pytest

from orderdesk.services.order_normalizer import normalize
from orderdesk.services.order_store import OrderStore
from orderdesk.services.order_track_public import canonical_email, lookup_public_tracking

BASE = "https://track.test/?no="


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("  A.B@Example.com ", "a.b@example.com"),
        ("Jo.Hn+shop@gmail.com", "john@gmail.com"),
        ("jo.hn@googlemail.com", "john@gmail.com"),
        ("no-at-sign", "no-at-sign"),
        (None, ""),
    ],
)
def test_canonical_email(raw, expected):
    assert canonical_email(raw) == expected


async def _seed(session, **delivery):
    store = OrderStore(session)
    await store.upsert(normalize({"order": {"number": "1001"}, "customer": {"email": "john.doe@gmail.com"}}))
    if delivery:
        await store.update_delivery(await store.find_by_order_number("1001"), delivery)
    await session.commit()


@pytest.mark.asyncio
async def test_unknown_order_is_not_found(session):
    out = await lookup_public_tracking(session, order_number="9999", email="x@y.com", track_base_url=BASE)
    assert out == {"ok": True, "state": "not_found"}


@pytest.mark.asyncio
async def test_no_tracking_number_is_pending(session):
    await _seed(session)
    out = await lookup_public_tracking(session, order_number="1001", email="johndoe@gmail.com", track_base_url=BASE)
    assert out["state"] == "pending"


@pytest.mark.asyncio
async def test_email_mismatch_is_pending(session):
    await _seed(session, trackingNumber="SHP-1")
    out = await lookup_public_tracking(session, order_number="1001", email="other@gmail.com", track_base_url=BASE)
    assert out == {"ok": True, "state": "pending"}


@pytest.mark.asyncio
async def test_live_url_with_canonical_email_and_hash_prefix(session):
    await _seed(session, trackingNumber="SHP 1/2")
    out = await lookup_public_tracking(
        session, order_number="#1001", email="John.Doe+tr@GMAIL.com", track_base_url=BASE
    )
    assert out == {"ok": True, "state": "live", "url": f"{BASE}SHP%201%2F2"}
