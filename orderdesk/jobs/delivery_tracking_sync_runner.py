# orderdesk/jobs/delivery_tracking_sync_runner.py
from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from orderdesk.core.config import get_settings
from orderdesk.core.logging import setup_logging
from orderdesk.db.session import close_engine, get_sessionmaker
from orderdesk.models.order_record import OrderRecord
from orderdesk.services.carrier_client import CarrierClient
from orderdesk.services.carrier_token_cache import get_token_cache
from orderdesk.services.delivery_state_machine import DeliveryStateMachine
from orderdesk.services.errors import OrderDeskError
from orderdesk.services.order_store import OrderStore

log = logging.getLogger("orderdesk.jobs.tracking")


async def run_once(
    session: AsyncSession,
    client: Optional[CarrierClient] = None,
    *,
    limit: int = 500,
) -> Dict[str, int]:
    """
    One poll pass over trackable orders (reference or tracking number, not DELIVERED).

    Each order is committed (or rolled back) on its own, so no row lock is held
    across the next order's carrier call and one failure never discards the others.
    Returns counters: scanned / updated / failed.
    """
    if client is None:
        client = CarrierClient(get_settings(), get_token_cache())
    machine = DeliveryStateMachine(session, client)

    rows = await OrderStore(session).list_trackable(limit)
    keys = [(r.id, r.channel, r.order_number) for r in rows]
    await session.commit()
    stats = {"scanned": len(keys), "updated": 0, "failed": 0}

    for order_id, channel, number in keys:
        try:
            r = await session.get(OrderRecord, order_id, populate_existing=True)
            if r is None:
                continue
            before = dict(r.delivery or {})
            result = await machine.track_record(r)
            await session.commit()
        except OrderDeskError as exc:
            await session.rollback()
            stats["failed"] += 1
            log.warning("tracking %s:%s failed: %s", channel, number, exc.message)
            continue
        if result.get("stage") != before.get("stage") or result.get("status") != (before.get("status") or "UNKNOWN"):
            stats["updated"] += 1

    return stats


async def main() -> None:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, json=settings.JSON_LOG)
    try:
        async with get_sessionmaker()() as session:
            stats = await run_once(session)
        log.info("delivery tracking sync: %s", stats)
    finally:
        await close_engine()


def run_cli() -> None:
    asyncio.run(main())
