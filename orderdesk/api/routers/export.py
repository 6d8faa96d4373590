# orderdesk/api/routers/export.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from orderdesk.api.deps import require_export_token
from orderdesk.core.config import AppSettings, get_settings
from orderdesk.db.session import get_session
from orderdesk.services.order_export import ExportOptions, flatten_orders
from orderdesk.services.order_store import OrderStore

router = APIRouter(prefix="/api", tags=["export"])


@router.get("/orders-flat", dependencies=[Depends(require_export_token)])
async def orders_flat(
    limit: Optional[int] = Query(default=None, ge=1, le=10000),
    session: AsyncSession = Depends(get_session),
    settings: AppSettings = Depends(get_settings),
):
    """Newest orders as spreadsheet rows (one row per line item)."""
    records = await OrderStore(session).list_recent(limit or settings.EXPORT_LIMIT)
    opts = ExportOptions(
        timezone=settings.EXPORT_TIMEZONE,
        default_courier=settings.EXPORT_DEFAULT_COURIER,
        default_payment_method=settings.EXPORT_DEFAULT_PAYMENT_METHOD,
        default_currency=settings.DEFAULT_CURRENCY,
    )
    return {"ok": True, **flatten_orders(records, opts)}
