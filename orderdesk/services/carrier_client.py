# orderdesk/services/carrier_client.py
from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

import httpx

from orderdesk.core.config import AppSettings
from orderdesk.metrics import CARRIER_ATTEMPTS
from orderdesk.models.order_record import OrderRecord
from orderdesk.services.carrier_status import fold, normalize_status
from orderdesk.services.carrier_token_cache import CarrierTokenCache
from orderdesk.services.carrier_types import Attempt, CarrierStatus, ShipmentRef
from orderdesk.services.errors import AttemptFailure, CarrierUnavailable
from orderdesk.services.order_paths import first_value
from orderdesk.services.order_types import placeholder_reference

log = logging.getLogger("orderdesk.carrier")

T = TypeVar("T")

# result-field names that mark a recognizable success
CREATE_REFERENCE_KEYS = (
    "referenceId",
    "orderReferenceId",
    "data.referenceId",
    "0.referenceId",
    "result.referenceId",
)
CREATE_SUCCESS_KEYS = CREATE_REFERENCE_KEYS + (
    "orderInvoiceId",
    "0.orderInvoiceId",
    "shipmentId",
    "0.shipmentId",
    "barcode",
    "0.barcode",
)
TRACKING_KEYS = (
    "trackingNumber",
    "shipmentId",
    "data.trackingNumber",
    "0.trackingNumber",
    "0.shipmentId",
    "shipment.shipmentId",
)
LABEL_KEYS = (
    "labelBase64",
    "base64",
    "label",
    "pdf",
    "zpl",
    "data.base64",
    "data.label",
    "data",
    "0.labelBase64",
    "0.label",
)
STATUS_KEYS = (
    "status",
    "statusDescription",
    "shipmentStatus",
    "shipmentStatusDescription",
    "data.status",
    "0.status",
    "0.shipmentStatus",
    "0.statusDescription",
    "shipment.status",
    "shipment.shipmentStatus",
)
DELIVERED_AT_KEYS = (
    "deliveredAt",
    "deliveryDate",
    "deliveryDateTime",
    "data.deliveredAt",
    "0.deliveryDate",
    "0.deliveryDateTime",
    "shipment.deliveryDate",
)

# whole phrases only: bare "mevcut" / "zaten" also appear in ordinary validation errors
DUPLICATE_MARKERS = tuple(
    fold(m)
    for m in (
        "duplicate",
        "already exist",
        "already registered",
        "zaten mevcut",
        "zaten kayıtlı",
        "daha önce oluşturulmuş",
        "daha önce kaydedilmiş",
        "mükerrer",
    )
)

_JSON_TYPES = ("application/json", "text/json", "+json")
_BINARY_TYPES = ("application/pdf", "application/octet-stream", "image/", "application/zpl", "x-zpl")


def _base(url: str) -> str:
    return (url or "").rstrip("/")


def _json(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return None


# leading bytes of the label formats the carrier prints (PDF, ZPL, PNG, JPEG, GIF)
LABEL_MAGIC = (b"%PDF", b"^XA", b"\x89PNG", b"\xff\xd8\xff", b"GIF8")


def looks_like_label(raw: bytes) -> bool:
    return bool(raw) and raw.lstrip().startswith(LABEL_MAGIC)


def _clean_b64(value: Any) -> Optional[str]:
    """
    Strip data-URI prefixes / whitespace; None unless it decodes to a label
    (short words like "FAIL" or "null" are valid base64 too).
    """
    if not isinstance(value, str):
        return None
    s = value.strip()
    if s.startswith("data:") and "," in s:
        s = s.split(",", 1)[1]
    s = "".join(s.split())
    if not s:
        return None
    try:
        raw = base64.b64decode(s, validate=True)
    except (binascii.Error, ValueError):
        return None
    return s if looks_like_label(raw) else None


def extract_label(resp: httpx.Response) -> Optional[str]:
    """
    Label body → base64 string, or None when the response carries no label.

    JSON bodies are probed under LABEL_KEYS; binary bodies (PDF, ZPL, images)
    are encoded as-is. Either way the decoded bytes must start like a label.
    """
    ctype = (resp.headers.get("content-type") or "").lower()
    if looks_like_label(resp.content):
        return base64.b64encode(resp.content).decode("ascii")
    if any(t in ctype for t in _BINARY_TYPES):
        return None

    doc = _json(resp)
    if doc is None and not any(t in ctype for t in _JSON_TYPES):
        # untyped body that is itself base64
        return _clean_b64(resp.text)
    if isinstance(doc, str):
        return _clean_b64(doc)
    for key in LABEL_KEYS:
        v = _clean_b64(first_value([doc], (key,), "raw"))
        if v:
            return v
    return None


def _unique(attempts: Sequence[Attempt]) -> List[Attempt]:
    """Drop repeats (an explicit URL may equal a derived one)."""
    out: List[Attempt] = []
    for a in attempts:
        if a not in out:
            out.append(a)
    return out


ERROR_STATUS_VALUES = ("error", "fail", "failed", "failure", "false", "hata", "not found")


def is_error_body(doc: Any) -> bool:
    """2xx bodies that still report a failure (success:false, an error field)."""
    if not isinstance(doc, dict):
        return False
    for flag in ("success", "isSuccess", "ok"):
        if doc.get(flag) is False:
            return True
    return bool(doc.get("error") or doc.get("errors") or doc.get("errorMessage"))


def is_duplicate_error(resp: httpx.Response) -> bool:
    doc = _json(resp)
    text = fold(json.dumps(doc, ensure_ascii=False) if doc is not None else resp.text)
    return any(m in text for m in DUPLICATE_MARKERS)


class CarrierClient:
    """
    HTTP client for the carrier gateway.

    Every operation is a list of fallback Attempts probed in order; the first
    response that carries recognizable result fields wins. When all attempts
    fail a CarrierUnavailable lists every attempt.
    """

    def __init__(
        self,
        settings: AppSettings,
        token_cache: CarrierTokenCache,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.tokens = token_cache
        self.transport = transport

    # ---------- plumbing ----------

    async def _headers(self) -> Dict[str, str]:
        s = self.settings
        token = await self.tokens.get_token()
        h = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }
        if s.CARRIER_CLIENT_ID:
            h["X-IBM-Client-Id"] = s.CARRIER_CLIENT_ID
        if s.CARRIER_CLIENT_SECRET:
            h["X-IBM-Client-Secret"] = s.CARRIER_CLIENT_SECRET
        return h

    async def _send(self, client: httpx.AsyncClient, a: Attempt) -> httpx.Response:
        resp = await client.request(a.method, a.url, headers=await self._headers(), json=a.body)
        if resp.status_code == 401:
            log.info("carrier 401 on %s, refreshing token", a.url)
            self.tokens.invalidate()
            resp = await client.request(a.method, a.url, headers=await self._headers(), json=a.body)
        return resp

    async def _probe(
        self,
        operation: str,
        attempts: Sequence[Attempt],
        accept: Callable[[httpx.Response], Optional[T]],
    ) -> T:
        failures: List[AttemptFailure] = []
        attempts = _unique(attempts)
        if not attempts:
            raise CarrierUnavailable(operation, message=f"carrier {operation} url is not configured")

        async with httpx.AsyncClient(
            timeout=self.settings.CARRIER_TIMEOUT_SECONDS, transport=self.transport
        ) as client:
            for a in attempts:
                try:
                    resp = await self._send(client, a)
                except httpx.HTTPError as exc:
                    CARRIER_ATTEMPTS.labels(operation, "error").inc()
                    failures.append(AttemptFailure(a.url, None, f"{exc.__class__.__name__}: {exc}"))
                    continue

                result = accept(resp)
                if result is not None:
                    CARRIER_ATTEMPTS.labels(operation, "success").inc()
                    return result

                CARRIER_ATTEMPTS.labels(operation, "failure").inc()
                failures.append(AttemptFailure(a.url, resp.status_code, (resp.text or "")[:500]))

        log.warning("carrier %s exhausted %d attempt(s)", operation, len(failures))
        raise CarrierUnavailable(operation, failures)

    # ---------- create ----------

    def create_body(self, order: OrderRecord, reference_id: str) -> Dict[str, Any]:
        customer = order.customer or {}
        items = order.items or []
        totals = order.totals or {}
        content = ", ".join(str(i.get("name") or i.get("sku") or "") for i in items if isinstance(i, dict))
        pieces = max(1, sum(int(i.get("qty") or 1) for i in items if isinstance(i, dict)))
        return {
            "order": {
                "referenceId": reference_id,
                "barcode": reference_id,
                "billOfLandingId": order.order_number,
                "isCOD": 0,
                "codAmount": 0,
                "shipmentServiceType": 1,
                "packagingType": 3,
                "content": content[:200],
                "paymentType": 1,
                "deliveryType": 1,
                "description": (order.notes or "")[:200],
                "totalAmount": totals.get("grandTotal") or 0,
            },
            "orderPieceList": [
                {"barcode": f"{reference_id}_{n}", "desi": 1, "kg": 1, "content": content[:100]}
                for n in range(1, pieces + 1)
            ],
            "recipient": {
                "fullName": customer.get("name") or "",
                "address": customer.get("address") or "",
                "email": customer.get("email") or "",
                "mobilePhoneNumber": customer.get("phone") or "",
            },
        }

    def create_attempts(self, body: Dict[str, Any]) -> List[Attempt]:
        s = self.settings
        out: List[Attempt] = []
        if s.CARRIER_CREATE_ORDER_URL:
            out.append(Attempt(s.CARRIER_CREATE_ORDER_URL, body))
        std = _base(s.CARRIER_STANDARD_CMD_URL)
        if std:
            out.append(Attempt(f"{std}/createOrder", body))
        return out

    async def create_shipment(self, order: OrderRecord) -> ShipmentRef:
        """
        Register the order with the carrier under its deterministic placeholder.
        A duplicate-reference answer means an earlier call already went through.
        """
        delivery = order.delivery or {}
        reference_id = delivery.get("referenceIdPlaceholder") or placeholder_reference(
            order.channel, order.order_number
        )
        body = self.create_body(order, reference_id)
        courier = self.settings.CARRIER_NAME

        def accept(resp: httpx.Response) -> Optional[ShipmentRef]:
            doc = _json(resp)
            if (
                resp.is_success
                and doc is not None
                and not is_error_body(doc)
                and first_value([doc], CREATE_SUCCESS_KEYS, "raw") is not None
            ):
                return ShipmentRef(
                    reference_id=first_value([doc], CREATE_REFERENCE_KEYS, "str") or reference_id,
                    tracking_number=first_value([doc], TRACKING_KEYS, "str"),
                    courier=courier,
                )
            if not resp.is_success and resp.status_code != 401 and is_duplicate_error(resp):
                log.info("carrier reports duplicate reference %s; treating as created", reference_id)
                return ShipmentRef(reference_id=reference_id, courier=courier, duplicate=True)
            return None

        return await self._probe("create", self.create_attempts(body), accept)

    # ---------- label ----------

    def label_attempts(self, reference_id: str, label_format: str, paper_size: str) -> List[Attempt]:
        s = self.settings
        out: List[Attempt] = []
        if s.CARRIER_LABEL_URL:
            out.append(
                Attempt(
                    s.CARRIER_LABEL_URL,
                    {"barcode": reference_id, "labelType": label_format, "paperSize": paper_size},
                )
            )
        std = _base(s.CARRIER_STANDARD_QUERY_URL)
        if std:
            for path, key in (
                ("getLabel", "barcode"),
                ("printLabel", "barcode"),
                ("getLabelByReferenceId", "referenceId"),
            ):
                out.append(
                    Attempt(
                        f"{std}/{path}",
                        {key: reference_id, "labelType": label_format, "paperSize": paper_size},
                    )
                )
        return out

    async def fetch_label(self, reference_id: str, label_format: str = "PDF", paper_size: str = "A6") -> str:
        def accept(resp: httpx.Response) -> Optional[str]:
            return extract_label(resp) if resp.is_success else None

        return await self._probe("label", self.label_attempts(reference_id, label_format, paper_size), accept)

    # ---------- track ----------

    def track_attempts(self, *, tracking_number: Optional[str], reference_id: Optional[str]) -> List[Attempt]:
        s = self.settings
        out: List[Attempt] = []
        if s.CARRIER_TRACK_URL:
            if reference_id:
                out.append(Attempt(s.CARRIER_TRACK_URL, {"referenceId": reference_id}))
            if tracking_number:
                out.append(Attempt(s.CARRIER_TRACK_URL, {"barcode": tracking_number}))
        std = _base(s.CARRIER_STANDARD_QUERY_URL)
        if std:
            if reference_id:
                out.append(Attempt(f"{std}/getshipmentstatus/{reference_id}", None, "GET"))
                out.append(Attempt(f"{std}/getorder/{reference_id}", None, "GET"))
            if tracking_number:
                out.append(Attempt(f"{std}/trackshipment", {"barcode": tracking_number}))
        return out

    async def query_status(
        self, *, tracking_number: Optional[str] = None, reference_id: Optional[str] = None
    ) -> CarrierStatus:
        def accept(resp: httpx.Response) -> Optional[CarrierStatus]:
            doc = _json(resp)
            if not resp.is_success or doc is None:
                return None
            if is_error_body(doc):
                return None
            raw_status = first_value([doc], STATUS_KEYS, "str")
            if raw_status is None or fold(raw_status) in ERROR_STATUS_VALUES:
                return None
            return CarrierStatus(
                status=normalize_status(raw_status),
                raw_status=raw_status,
                delivered_at=first_value([doc], DELIVERED_AT_KEYS, "datetime"),
                tracking_number=first_value([doc], TRACKING_KEYS, "str") or tracking_number,
                raw_payload=doc if isinstance(doc, dict) else {"items": doc},
            )

        attempts = self.track_attempts(tracking_number=tracking_number, reference_id=reference_id)
        return await self._probe("track", attempts, accept)
