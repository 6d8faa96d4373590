# orderdesk/api/routers/track_public.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from orderdesk.core.config import AppSettings, get_settings
from orderdesk.db.session import get_session
from orderdesk.services.errors import OrderDeskError
from orderdesk.services.order_track_public import lookup_public_tracking

router = APIRouter(prefix="/api", tags=["track-public"])


@router.get("/track-public")
async def track_public(
    order: Optional[str] = Query(default=None),
    email: Optional[str] = Query(default=None),
    session: AsyncSession = Depends(get_session),
    settings: AppSettings = Depends(get_settings),
):
    if not (order or "").strip() or not (email or "").strip():
        raise OrderDeskError("order and email are required", code="BAD_REQUEST", status=400)
    return await lookup_public_tracking(
        session,
        order_number=order,
        email=email,
        track_base_url=settings.PUBLIC_TRACK_BASE_URL,
    )
