# orderdesk/api/routers/webhook.py
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from orderdesk.api.deps import require_webhook_token
from orderdesk.core.config import AppSettings, get_settings
from orderdesk.db.session import get_session
from orderdesk.services.order_ingest_service import OrderIngestService

router = APIRouter(prefix="/api", tags=["webhook"])


@router.get("/wix-webhook")
async def webhook_alive():
    return {"ok": True, "endpoint": "wix-webhook"}


@router.post("/wix-webhook", dependencies=[Depends(require_webhook_token)])
async def wix_webhook(
    payload: Any = Body(default=None),
    channel: Optional[str] = Query(default=None),
    session: AsyncSession = Depends(get_session),
    settings: AppSettings = Depends(get_settings),
):
    """
    Storefront order event (any JSON shape). Repeated deliveries of the same
    order converge to one record.
    """
    result = await OrderIngestService.ingest(
        session,
        payload,
        channel=channel,
        default_channel=settings.DEFAULT_CHANNEL,
        default_currency=settings.DEFAULT_CURRENCY,
    )
    return {
        "ok": True,
        "orderNumber": result["orderNumber"],
        "matched": result["matched"],
        "modified": result["modified"],
        "inserted": result["inserted"],
    }
