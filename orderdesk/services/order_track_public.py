# orderdesk/services/order_track_public.py
from __future__ import annotations

from typing import Any, Dict, Optional
from urllib.parse import quote

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orderdesk.models.order_record import OrderRecord


def canonical_email(raw: Any) -> str:
    """
    Lower-case; for gmail / googlemail drop dots and +tags in the local part.
    """
    e = str(raw or "").strip().lower()
    at = e.rfind("@")
    if at == -1:
        return e
    local, domain = e[:at], e[at + 1 :]
    if domain == "googlemail.com":
        domain = "gmail.com"
    if domain == "gmail.com":
        local = local.split("+", 1)[0].replace(".", "")
    return f"{local}@{domain}"


async def lookup_public_tracking(
    session: AsyncSession,
    *,
    order_number: str,
    email: str,
    track_base_url: str,
) -> Dict[str, Any]:
    """
    Customer-facing lookup.

    live      : order known, email matches, carrier tracking number present
    pending   : order known but not trackable for this caller yet
    not_found : no such order number
    """
    number = (order_number or "").strip().lstrip("#")
    rows = (
        await session.execute(
            select(OrderRecord).where(OrderRecord.order_number == number).order_by(OrderRecord.id.asc())
        )
    ).scalars().all()
    if not rows:
        return {"ok": True, "state": "not_found"}

    wanted = canonical_email(email)
    match: Optional[OrderRecord] = next(
        (r for r in rows if canonical_email((r.customer or {}).get("email")) == wanted), None
    )
    if match is None:
        return {"ok": True, "state": "pending"}

    tracking = str((match.delivery or {}).get("trackingNumber") or "").strip()
    if not tracking:
        return {"ok": True, "state": "pending"}
    return {"ok": True, "state": "live", "url": f"{track_base_url}{quote(tracking, safe='')}"}
