# orderdesk/api/routers/carrier.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from orderdesk.api.deps import get_carrier_client, require_internal_key
from orderdesk.db.session import get_session
from orderdesk.services.carrier_client import CarrierClient
from orderdesk.services.delivery_state_machine import DeliveryStateMachine
from orderdesk.services.errors import OrderDeskError

router = APIRouter(prefix="/api", tags=["carrier"], dependencies=[Depends(require_internal_key)])


class CreateShipmentIn(BaseModel):
    orderNumber: str = Field(..., min_length=1)
    channel: Optional[str] = None


class LabelIn(BaseModel):
    orderNumber: Optional[str] = None
    referenceId: Optional[str] = None
    channel: Optional[str] = None
    labelType: str = "PDF"
    paperSize: str = "A6"


@router.post("/dhl-create-order")
async def dhl_create_order(
    body: CreateShipmentIn,
    session: AsyncSession = Depends(get_session),
    client: CarrierClient = Depends(get_carrier_client),
):
    machine = DeliveryStateMachine(session, client)
    out = await machine.create_shipment(body.orderNumber, body.channel)
    await session.commit()
    return {"ok": True, **out}


@router.post("/dhl-label")
async def dhl_label(
    body: LabelIn,
    session: AsyncSession = Depends(get_session),
    client: CarrierClient = Depends(get_carrier_client),
):
    if not (body.orderNumber or body.referenceId):
        raise OrderDeskError("orderNumber or referenceId required", code="BAD_REQUEST", status=400)
    machine = DeliveryStateMachine(session, client)
    out = await machine.fetch_label(
        order_number=body.orderNumber,
        reference_id=body.referenceId,
        channel=body.channel,
        label_format=body.labelType,
        paper_size=body.paperSize,
    )
    await session.commit()
    return {"ok": True, **out}


@router.get("/dhl-track-order")
async def dhl_track_order(
    orderNumber: Optional[str] = Query(default=None),
    tracking: Optional[str] = Query(default=None),
    channel: Optional[str] = Query(default=None),
    session: AsyncSession = Depends(get_session),
    client: CarrierClient = Depends(get_carrier_client),
):
    machine = DeliveryStateMachine(session, client)
    if orderNumber:
        out = await machine.track(orderNumber, channel)
        await session.commit()
    elif tracking:
        out = await machine.track_adhoc(tracking)
    else:
        raise OrderDeskError("orderNumber or tracking required", code="BAD_REQUEST", status=400)
    return {"ok": True, **out}
