# tests/api/test_orders_flat_api.py
import pytest

pytestmark = pytest.mark.asyncio


async def _post(client, number: str, **order):
    payload = {"order": {"number": number, **order}, "items": [{"sku": "X1", "qty": 1, "unitPrice": 10}]}
    r = await client.post("/api/wix-webhook?token=hook-secret", json=payload)
    assert r.status_code == 200, r.text


async def test_requires_export_key(client):
    r = await client.get("/api/orders-flat")
    assert r.status_code == 401
    r = await client.get("/api/orders-flat", headers={"X-Api-Key": "hook-secret"})
    assert r.status_code == 401


async def test_rows_newest_first(client):
    await _post(client, "1001", createdAt="2024-05-01T10:00:00Z")
    await _post(client, "1002", createdAt="2024-05-02T10:00:00Z")

    r = await client.get("/api/orders-flat", params={"key": "export-secret"})
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert len(body["headers"]) == 35
    assert [row[0] for row in body["rows"]] == ["1002", "1001"]
    assert body["rows"][0][body["headers"].index("DHL Referans No")] == "WIX1002"


async def test_limit_and_bearer(client):
    await _post(client, "1001")
    await _post(client, "1002")
    r = await client.get("/api/orders-flat?limit=1", headers={"Authorization": "Bearer export-secret"})
    assert r.status_code == 200
    assert len(r.json()["rows"]) == 1


async def test_invalid_limit_is_422(client):
    r = await client.get("/api/orders-flat?limit=0&key=export-secret")
    assert r.status_code == 422
    assert r.json()["code"] == "REQUEST_VALIDATION_ERROR"
