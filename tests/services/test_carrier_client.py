# tests/services/test_carrier_client.py
import base64
import json

import httpx
import pytest

from orderdesk.models.order_record import OrderRecord
from orderdesk.services.errors import CarrierUnavailable

pytestmark = pytest.mark.asyncio

PDF = b"%PDF-1.4 fake label"
PDF_B64 = base64.b64encode(PDF).decode()


def _order() -> OrderRecord:
    return OrderRecord(
        channel="wix",
        order_number="1001",
        customer={"name": "A B", "email": "a@b.com", "phone": "0555", "address": "Foo Sk. 3, Ankara"},
        items=[{"sku": "X1", "name": "Pet Portre", "qty": 2, "unitPrice": 50.0, "variants": {}}],
        totals={"grandTotal": 100, "shipping": 0, "discount": 0, "currency": "TRY"},
        payment={},
        delivery={"stage": "REFERENCE_PLACEHOLDER", "referenceIdPlaceholder": "WIX1001", "referenceId": ""},
        supplier={},
        notes="",
    )


# ---------- labels ----------


async def test_label_from_explicit_url(carrier_client, carrier):
    carrier.on("POST", "/barcodecmdapi/getLabel", json={"labelBase64": PDF_B64})
    assert await carrier_client.fetch_label("WIX1001") == PDF_B64

    req = [r for r in carrier.calls if r.url.path == "/barcodecmdapi/getLabel"][0]
    assert json.loads(req.content) == {"barcode": "WIX1001", "labelType": "PDF", "paperSize": "A6"}
    assert req.headers["authorization"].startswith("Bearer ")
    assert req.headers["x-ibm-client-id"] == "cid"


async def test_label_fallback_chain_strips_data_uri(carrier_client, carrier):
    carrier.on("POST", "/barcodecmdapi/getLabel", status=500, json={"error": "boom"})
    carrier.on("POST", "/standardqueryapi/getLabel", json={"message": "ok"})
    carrier.on("POST", "/standardqueryapi/printLabel", json={"data": f"data:application/pdf;base64,{PDF_B64}"})

    assert await carrier_client.fetch_label("WIX1001") == PDF_B64
    assert carrier.paths(skip_token=True) == [
        "/barcodecmdapi/getLabel",
        "/standardqueryapi/getLabel",
        "/standardqueryapi/printLabel",
    ]


async def test_label_by_reference_id_uses_reference_key(carrier_client, carrier):
    carrier.on("POST", "/standardqueryapi/getLabelByReferenceId", json={"data": {"base64": PDF_B64}})
    assert await carrier_client.fetch_label("WIX1001", "ZPL", "10x15") == PDF_B64
    last = carrier.calls[-1]
    assert json.loads(last.content) == {"referenceId": "WIX1001", "labelType": "ZPL", "paperSize": "10x15"}


async def test_binary_label_is_base64_encoded(carrier_client, carrier):
    carrier.on(
        "POST",
        "/barcodecmdapi/getLabel",
        content=PDF,
        headers={"content-type": "application/pdf"},
    )
    assert base64.b64decode(await carrier_client.fetch_label("WIX1001")) == PDF


async def test_label_exhaustion_raises_with_every_attempt(carrier_client, carrier):
    carrier.on("POST", "/barcodecmdapi/getLabel", json={"error": "label not ready"})
    carrier.on("POST", "/standardqueryapi/getLabel", json={"label": "not-base64!!"})
    carrier.on("POST", "/standardqueryapi/printLabel", status=500, json={"error": "down"})
    carrier.on("POST", "/standardqueryapi/getLabelByReferenceId", status=400, json={"error": "unknown barcode"})

    with pytest.raises(CarrierUnavailable) as ei:
        await carrier_client.fetch_label("WIX1001")

    err = ei.value
    assert err.operation == "label"
    assert [a.url.rsplit("/", 1)[-1] for a in err.attempts] == [
        "getLabel",
        "getLabel",
        "printLabel",
        "getLabelByReferenceId",
    ]
    assert [a.status_code for a in err.attempts] == [200, 200, 500, 400]
    assert "unknown barcode" in err.last_error_body


async def test_timeout_counts_as_failed_attempt(carrier_client, carrier):
    def timeout(req: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=req)

    carrier.on("POST", "/barcodecmdapi/getLabel", responder=timeout)
    carrier.on("POST", "/standardqueryapi/getLabel", json={"base64": PDF_B64})

    assert await carrier_client.fetch_label("WIX1001") == PDF_B64


async def test_401_refreshes_token_and_retries_once(carrier_client, carrier):
    seen = {"n": 0}

    def flaky(req: httpx.Request) -> httpx.Response:
        seen["n"] += 1
        if seen["n"] == 1:
            return httpx.Response(401, json={"error": "token expired"})
        return httpx.Response(200, json={"labelBase64": PDF_B64})

    carrier.on("POST", "/barcodecmdapi/getLabel", responder=flaky)

    assert await carrier_client.fetch_label("WIX1001") == PDF_B64
    assert carrier.paths() == ["/token", "/barcodecmdapi/getLabel", "/token", "/barcodecmdapi/getLabel"]


# ---------- create ----------


async def test_create_sends_placeholder_and_reads_reference(carrier_client, carrier):
    carrier.on(
        "POST",
        "/ecommerce/createOrder",
        json=[{"referenceId": "WIX1001", "orderInvoiceId": "INV-1", "shipmentId": "SHP-77"}],
    )
    ref = await carrier_client.create_shipment(_order())

    assert ref.reference_id == "WIX1001"
    assert ref.tracking_number == "SHP-77"
    assert ref.courier == "DHL"
    body = json.loads(carrier.calls[-1].content)
    assert body["order"]["referenceId"] == "WIX1001"
    assert body["order"]["barcode"] == "WIX1001"
    assert body["recipient"]["fullName"] == "A B"


async def test_create_falls_back_to_standard_cmd_path(carrier_client, carrier):
    carrier.on("POST", "/ecommerce/createOrder", status=503, json={"error": "maintenance"})
    carrier.on("POST", "/standardcmdapi/createOrder", json={"orderReferenceId": "WIX1001"})
    ref = await carrier_client.create_shipment(_order())
    assert ref.reference_id == "WIX1001"
    assert not ref.duplicate


async def test_create_duplicate_reference_is_success(carrier_client, carrier):
    carrier.on(
        "POST",
        "/ecommerce/createOrder",
        status=409,
        json={"error": "Bu referans numarası ile kayıt zaten mevcut"},
    )
    ref = await carrier_client.create_shipment(_order())
    assert ref.reference_id == "WIX1001"
    assert ref.duplicate is True


async def test_create_2xx_without_result_fields_is_not_success(carrier_client, carrier):
    carrier.on("POST", "/ecommerce/createOrder", json={"message": "accepted"})
    carrier.on("POST", "/standardcmdapi/createOrder", json={"message": "accepted"})
    with pytest.raises(CarrierUnavailable):
        await carrier_client.create_shipment(_order())


# ---------- tracking ----------


async def test_query_status_normalizes_text(carrier_client, carrier):
    carrier.on(
        "POST",
        "/track",
        json={"shipment": {"shipmentStatus": "Teslim Edildi", "deliveryDate": "2024-05-03T12:00:00Z"}},
    )
    st = await carrier_client.query_status(reference_id="WIX1001", tracking_number="SHP-77")
    assert st.status == "DELIVERED"
    assert st.raw_status == "Teslim Edildi"
    assert st.delivered_at.isoformat() == "2024-05-03T12:00:00+00:00"
    assert st.tracking_number == "SHP-77"


async def test_query_status_falls_back_to_get_path(carrier_client, carrier):
    carrier.on("GET", "/standardqueryapi/getshipmentstatus/WIX1001", json=[{"status": "Yolda"}])
    st = await carrier_client.query_status(reference_id="WIX1001")
    assert st.status == "IN_TRANSIT"


async def test_plain_text_error_bodies_are_not_labels(carrier_client, carrier):
    for path in ("/barcodecmdapi/getLabel", "/standardqueryapi/getLabel", "/standardqueryapi/printLabel"):
        carrier.on("POST", path, content=b"FAIL", headers={"content-type": "text/plain"})
    carrier.on("POST", "/standardqueryapi/getLabelByReferenceId", json={"data": "Not Found"})

    with pytest.raises(CarrierUnavailable) as ei:
        await carrier_client.fetch_label("WIX1001")
    assert [a.status_code for a in ei.value.attempts] == [200, 200, 200, 200]


async def test_untyped_null_and_true_bodies_are_not_labels(carrier_client, carrier):
    carrier.on("POST", "/barcodecmdapi/getLabel", content=b"null")
    carrier.on("POST", "/standardqueryapi/getLabel", content=b"true")
    carrier.on("POST", "/standardqueryapi/printLabel", content=PDF, headers={"content-type": "text/plain"})

    # a raw PDF body is still recognized even when mislabelled
    assert base64.b64decode(await carrier_client.fetch_label("WIX1001")) == PDF


async def test_validation_error_mentioning_mevcut_is_not_a_duplicate(carrier_client, carrier):
    for path in ("/ecommerce/createOrder", "/standardcmdapi/createOrder"):
        carrier.on("POST", path, status=400, json={"message": "Alıcı telefon numarası mevcut değil"})

    with pytest.raises(CarrierUnavailable) as ei:
        await carrier_client.create_shipment(_order())
    assert [a.status_code for a in ei.value.attempts] == [400, 400]


async def test_create_with_success_false_is_not_success(carrier_client, carrier):
    carrier.on("POST", "/ecommerce/createOrder", json={"success": False, "referenceId": "WIX1001"})
    carrier.on("POST", "/standardcmdapi/createOrder", json={"referenceId": "WIX1001"})
    ref = await carrier_client.create_shipment(_order())
    assert ref.reference_id == "WIX1001"
    assert carrier.paths(skip_token=True) == ["/ecommerce/createOrder", "/standardcmdapi/createOrder"]


async def test_error_status_body_falls_through_to_next_endpoint(carrier_client, carrier):
    carrier.on("POST", "/track", json={"status": "error", "message": "tenant not enabled"})
    carrier.on("GET", "/standardqueryapi/getshipmentstatus/WIX1001", json={"status": "Delivered"})

    st = await carrier_client.query_status(reference_id="WIX1001")

    assert st.status == "DELIVERED"
    assert carrier.paths(skip_token=True) == ["/track", "/standardqueryapi/getshipmentstatus/WIX1001"]


async def test_success_false_tracking_body_is_skipped(carrier_client, carrier):
    carrier.on("POST", "/track", json={"success": False, "status": "Yolda"})
    carrier.on("GET", "/standardqueryapi/getshipmentstatus/WIX1001", json={"status": "Teslim edildi"})

    st = await carrier_client.query_status(reference_id="WIX1001")
    assert st.status == "DELIVERED"
