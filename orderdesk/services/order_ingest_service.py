# orderdesk/services/order_ingest_service.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from orderdesk.metrics import ORDERS_INGESTED
from orderdesk.services.errors import MissingIdentifier, StoreError
from orderdesk.services.order_normalizer import normalize
from orderdesk.services.order_store import OrderStore

log = logging.getLogger("orderdesk.ingest")


class OrderIngestService:
    """
    Inbound order payload → canonical order → idempotent upsert.

    Payloads without an order number are archived to raw_order_events
    (best effort) and rejected with MissingIdentifier.
    """

    @staticmethod
    async def ingest(
        session: AsyncSession,
        payload: Any,
        *,
        channel: Optional[str] = None,
        default_channel: str = "wix",
        default_currency: str = "TRY",
    ) -> Dict[str, Any]:
        try:
            order = normalize(payload, channel=channel, default_channel=default_channel)
        except MissingIdentifier:
            ch = (channel or default_channel).strip().lower()
            ORDERS_INGESTED.labels(ch, "rejected").inc()
            await OrderIngestService._archive(session, ch, payload)
            raise

        store = OrderStore(session, default_currency=default_currency)
        try:
            result = await store.upsert(order)
            await session.commit()
        except StoreError:
            await session.rollback()
            ORDERS_INGESTED.labels(order.channel, "error").inc()
            raise

        outcome = "inserted" if result.inserted else ("modified" if result.modified else "unchanged")
        ORDERS_INGESTED.labels(order.channel, outcome).inc()
        return {"orderNumber": order.order_number, "channel": order.channel, **result.to_dict()}

    @staticmethod
    async def _archive(session: AsyncSession, channel: str, payload: Any) -> None:
        body = payload if isinstance(payload, (dict, list)) else {"value": str(payload)}
        try:
            await OrderStore(session).archive_raw_event(
                channel=channel, reason="missing orderNumber", payload=body
            )
            await session.commit()
        except StoreError:
            await session.rollback()
            log.warning("raw payload archive failed (channel=%s)", channel)
