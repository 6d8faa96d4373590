# orderdesk/services/delivery_state_machine.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from orderdesk.metrics import DELIVERY_TRANSITIONS
from orderdesk.models.order_record import OrderRecord
from orderdesk.services.carrier_client import CarrierClient
from orderdesk.services.carrier_status import (
    DELIVERED,
    IN_TRANSIT,
    OUT_FOR_DELIVERY,
    STATUS_RANK,
    UNKNOWN,
)
from orderdesk.services.carrier_types import CarrierStatus
from orderdesk.services.errors import OrderDeskError
from orderdesk.services.order_store import OrderStore
from orderdesk.services.order_types import DeliveryStage
from orderdesk.services.order_utils import iso, utcnow

log = logging.getLogger("orderdesk.delivery")

# carrier status → stage it implies (CREATED implies nothing new)
STATUS_STAGE = {
    IN_TRANSIT: DeliveryStage.IN_TRANSIT,
    OUT_FOR_DELIVERY: DeliveryStage.IN_TRANSIT,
    DELIVERED: DeliveryStage.DELIVERED,
}

LABEL_EXT = {"PDF": "pdf", "ZPL": "zpl", "PNG": "png", "JPG": "jpg"}


def raise_stage(current: Any, target: DeliveryStage) -> Optional[DeliveryStage]:
    """Target stage when it outranks the current one, else None (stages never go back)."""
    cur = DeliveryStage.parse(current)
    return target if target.rank > cur.rank else None


def plan_tracking_update(delivery: Dict[str, Any], status: CarrierStatus) -> Dict[str, Any]:
    """
    Delivery fields to write for one carrier answer.

    - UNKNOWN never replaces a known status
    - a status ranked below the stored one is reported and dropped
    - stage only moves forward
    """
    fields: Dict[str, Any] = {"lastTrackedAt": iso(utcnow())}
    if status.tracking_number and not delivery.get("trackingNumber"):
        fields["trackingNumber"] = status.tracking_number

    new = status.status
    current = str(delivery.get("status") or UNKNOWN).upper()
    if new == UNKNOWN:
        if current == UNKNOWN and status.raw_status:
            fields["carrierStatus"] = status.raw_status
        return fields

    if STATUS_RANK.get(new, 0) < STATUS_RANK.get(current, 0):
        log.warning(
            "stale carrier status ignored: stored=%s incoming=%s raw=%r",
            current,
            new,
            status.raw_status,
        )
        return fields

    stage_now = DeliveryStage.parse(delivery.get("stage"))
    if stage_now is DeliveryStage.DELIVERED and new != DELIVERED:
        log.warning("carrier reports %s for a DELIVERED order; stage kept", new)
        return fields

    fields["status"] = new
    fields["carrierStatus"] = status.raw_status

    target = STATUS_STAGE.get(new)
    if target is not None:
        nxt = raise_stage(stage_now, target)
        if nxt is not None:
            fields["stage"] = nxt.value
        if target is DeliveryStage.IN_TRANSIT and not delivery.get("shippedAt"):
            fields["shippedAt"] = iso(utcnow())

    if new == DELIVERED:
        fields["deliveredAt"] = (
            iso(status.delivered_at) or delivery.get("deliveredAt") or iso(utcnow())
        )
    return fields


class DeliveryStateMachine:
    """
    Drives one order through reference → label → tracking → delivery.

    Carrier failures propagate before anything is written.
    """

    def __init__(self, session: AsyncSession, client: CarrierClient):
        self.session = session
        self.client = client
        self.store = OrderStore(session, default_currency=client.settings.DEFAULT_CURRENCY)

    async def _write(self, record: OrderRecord, fields: Dict[str, Any]) -> Dict[str, Any]:
        before = DeliveryStage.parse((record.delivery or {}).get("stage"))
        delivery = await self.store.update_delivery(record, fields)
        after = DeliveryStage.parse(delivery.get("stage"))
        if after is not before:
            DELIVERY_TRANSITIONS.labels(after.value).inc()
            log.info(
                "delivery stage %s:%s %s -> %s",
                record.channel,
                record.order_number,
                before.value,
                after.value,
            )
        return delivery

    # ---------- reference ----------

    async def create_shipment(self, order_number: str, channel: Optional[str] = None) -> Dict[str, Any]:
        record = await self.store.find_by_order_number(order_number, channel)
        d = record.delivery or {}
        if d.get("referenceId"):
            return {
                "orderNumber": record.order_number,
                "referenceId": d["referenceId"],
                "trackingNumber": d.get("trackingNumber") or None,
                "stage": DeliveryStage.parse(d.get("stage")).value,
                "created": False,
            }

        ref = await self.client.create_shipment(record)

        fields: Dict[str, Any] = {
            "referenceId": ref.reference_id,
            "courier": ref.courier or d.get("courier") or "",
            "lastError": None,
        }
        if ref.tracking_number:
            fields["trackingNumber"] = ref.tracking_number
        nxt = raise_stage(d.get("stage"), DeliveryStage.REFERENCE_ASSIGNED)
        if nxt is not None:
            fields["stage"] = nxt.value
        delivery = await self._write(record, fields)

        return {
            "orderNumber": record.order_number,
            "referenceId": delivery["referenceId"],
            "trackingNumber": delivery.get("trackingNumber") or None,
            "stage": DeliveryStage.parse(delivery.get("stage")).value,
            "created": True,
        }

    # ---------- label ----------

    async def fetch_label(
        self,
        *,
        order_number: Optional[str] = None,
        reference_id: Optional[str] = None,
        channel: Optional[str] = None,
        label_format: str = "PDF",
        paper_size: str = "A6",
    ) -> Dict[str, Any]:
        record: Optional[OrderRecord] = None
        if order_number:
            record = await self.store.find_by_order_number(order_number, channel)
            d = record.delivery or {}
            reference_id = reference_id or d.get("referenceId") or d.get("referenceIdPlaceholder")
        if not reference_id:
            raise OrderDeskError("orderNumber or referenceId required", code="BAD_REQUEST", status=400)

        label_format = (label_format or "PDF").upper()
        content = await self.client.fetch_label(reference_id, label_format, paper_size)
        file_name = f"{reference_id}.{LABEL_EXT.get(label_format, label_format.lower())}"

        label = await self.store.save_label(
            record=record,
            reference_id=reference_id,
            label_format=label_format,
            paper_size=paper_size,
            file_name=file_name,
            content_b64=content,
        )

        stage = None
        if record is not None:
            fields: Dict[str, Any] = {"labelId": label.id, "labelPrintedAt": iso(utcnow())}
            nxt = raise_stage((record.delivery or {}).get("stage"), DeliveryStage.LABEL_PRINTED)
            if nxt is not None:
                fields["stage"] = nxt.value
            delivery = await self._write(record, fields)
            stage = delivery.get("stage")

        return {
            "referenceId": reference_id,
            "base64": content,
            "fileName": file_name,
            "labelId": label.id,
            "stage": stage,
        }

    # ---------- tracking ----------

    async def track(self, order_number: str, channel: Optional[str] = None) -> Dict[str, Any]:
        record = await self.store.find_by_order_number(order_number, channel)
        return await self.track_record(record)

    async def track_record(self, record: OrderRecord) -> Dict[str, Any]:
        d = record.delivery or {}
        reference_id = d.get("referenceId") or None
        tracking_number = d.get("trackingNumber") or None

        if not reference_id and not tracking_number:
            if DeliveryStage.parse(d.get("stage")) is DeliveryStage.NEW:
                d = await self._write(record, {"stage": DeliveryStage.UNKNOWN.value})
            return {
                "orderNumber": record.order_number,
                "status": UNKNOWN,
                "deliveredAt": d.get("deliveredAt"),
                "trackingNumber": None,
                "stage": DeliveryStage.parse(d.get("stage")).value,
            }

        status = await self.client.query_status(tracking_number=tracking_number, reference_id=reference_id)
        d = await self._write(record, plan_tracking_update(d, status))

        return {
            "orderNumber": record.order_number,
            "status": d.get("status") or UNKNOWN,
            "carrierStatus": d.get("carrierStatus") or "",
            "deliveredAt": d.get("deliveredAt"),
            "trackingNumber": d.get("trackingNumber") or None,
            "stage": DeliveryStage.parse(d.get("stage")).value,
        }

    async def track_adhoc(self, tracking_number: str) -> Dict[str, Any]:
        """Carrier lookup for a bare tracking number; nothing is stored."""
        status = await self.client.query_status(tracking_number=tracking_number)
        return {
            "status": status.status,
            "carrierStatus": status.raw_status,
            "deliveredAt": iso(status.delivered_at),
            "trackingNumber": status.tracking_number or tracking_number,
        }
