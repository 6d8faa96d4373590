# tests/api/test_carrier_api.py
import base64

import pytest

pytestmark = pytest.mark.asyncio

KEY = {"X-Api-Key": "internal-key"}
PDF_B64 = base64.b64encode(b"%PDF-1.4 label").decode()


async def _order(client, number: str = "1001"):
    payload = {"order": {"number": number}, "customer": {"name": "A B", "email": "a@b.com"}}
    r = await client.post("/api/wix-webhook?token=hook-secret", json=payload)
    assert r.status_code == 200, r.text


async def test_internal_key_required(client):
    r = await client.post("/api/dhl-create-order", json={"orderNumber": "1001"})
    assert r.status_code == 401
    r = await client.get("/api/dhl-track-order?orderNumber=1001", headers={"X-Api-Key": "nope"})
    assert r.status_code == 401


async def test_create_label_track_flow(client, carrier):
    await _order(client)
    carrier.on("POST", "/ecommerce/createOrder", json={"referenceId": "WIX1001"})
    carrier.on("POST", "/barcodecmdapi/getLabel", json={"labelBase64": PDF_B64})
    carrier.on("POST", "/track", json={"status": "Yolda", "shipmentId": "SHP-1"})

    r = await client.post("/api/dhl-create-order", json={"orderNumber": "1001"}, headers=KEY)
    assert r.status_code == 200, r.text
    assert r.json()["referenceId"] == "WIX1001"
    assert r.json()["stage"] == "REFERENCE_ASSIGNED"

    r = await client.post("/api/dhl-label", json={"orderNumber": "1001"}, headers=KEY)
    assert r.status_code == 200, r.text
    assert r.json()["base64"] == PDF_B64
    assert r.json()["stage"] == "LABEL_PRINTED"

    r = await client.get("/api/dhl-track-order", params={"orderNumber": "1001"}, headers=KEY)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["status"] == "IN_TRANSIT"
    assert body["stage"] == "IN_TRANSIT"
    assert body["trackingNumber"] == "SHP-1"


async def test_unknown_order_is_404(client):
    r = await client.post("/api/dhl-create-order", json={"orderNumber": "404"}, headers=KEY)
    assert r.status_code == 404
    assert r.json()["code"] == "NOT_FOUND"


async def test_carrier_exhaustion_is_502_with_attempts(client, carrier):
    await _order(client)
    carrier.on("POST", "/ecommerce/createOrder", status=500, json={"error": "down"})

    r = await client.post("/api/dhl-create-order", json={"orderNumber": "1001"}, headers=KEY)
    assert r.status_code == 502
    body = r.json()
    assert body["code"] == "CARRIER_UNAVAILABLE"
    assert body["operation"] == "create"
    assert [a["status"] for a in body["attempts"]] == [500, 404]


async def test_label_and_track_need_an_identifier(client):
    r = await client.post("/api/dhl-label", json={}, headers=KEY)
    assert r.status_code == 400
    r = await client.get("/api/dhl-track-order", headers=KEY)
    assert r.status_code == 400
    assert r.json()["code"] == "BAD_REQUEST"


async def test_adhoc_tracking_by_number(client, carrier):
    carrier.on("POST", "/track", json={"status": "DELIVERED", "deliveryDate": "2024-05-03T12:00:00Z"})
    r = await client.get("/api/dhl-track-order", params={"tracking": "SHP-9"}, headers={"Authorization": "Bearer internal-key"})
    assert r.status_code == 200
    assert r.json()["status"] == "DELIVERED"
    assert r.json()["deliveredAt"] == "2024-05-03T12:00:00+00:00"
