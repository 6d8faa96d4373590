# orderdesk/services/order_store.py
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orderdesk.models.order_record import OrderRecord
from orderdesk.models.raw_order_event import RawOrderEvent
from orderdesk.models.shipping_label import ShippingLabel
from orderdesk.services.errors import OrderNotFound, StoreError
from orderdesk.services.order_types import (
    CanonicalOrder,
    DeliveryStage,
    UpsertResult,
    initial_delivery,
)
from orderdesk.services.order_utils import UTC, utcnow

log = logging.getLogger("orderdesk.store")

_KEY = ("channel", "order_number")


@contextmanager
def _guard(op: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        log.exception("order store %s failed", op)
        raise StoreError(f"order store {op} failed: {exc.__class__.__name__}") from exc


def _fill_empty(stored: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, Any]:
    """Incoming keys only land where the stored value is absent or blank."""
    out = dict(stored)
    for k, v in incoming.items():
        if v in (None, ""):
            continue
        if out.get(k) in (None, ""):
            out[k] = v
    return out


def merge_order(row: OrderRecord, order: CanonicalOrder) -> Dict[str, Any]:
    """
    Column → new value for every column the incoming order changes.

    - customer / totals / payment: found leaves replace stored leaves
    - items: replaced as a whole when the payload carried items
    - delivery / supplier: only fill blanks (carrier-resolved and back-office values win)
    - created_at / first_seen_at: never touched here
    """
    merged: Dict[str, Any] = {
        "customer": {**(row.customer or {}), **order.customer.found()},
        "totals": {**(row.totals or {}), **order.totals.found()},
        "payment": {**(row.payment or {}), **order.payment.found()},
        "delivery": _fill_empty(row.delivery or {}, order.delivery.found()),
        "supplier": _fill_empty(row.supplier or {}, order.supplier or {}),
    }
    if order.items is not None:
        merged["items"] = [i.to_dict() for i in order.items]
    if order.notes is not None:
        merged["notes"] = order.notes
    if order.raw is not None:
        merged["raw"] = order.raw

    return {col: val for col, val in merged.items() if getattr(row, col) != val}


class OrderStore:
    """
    Idempotent persistence of canonical orders, keyed by (channel, order_number).

    Callers own the transaction (commit / rollback).
    """

    def __init__(self, session: AsyncSession, *, default_currency: str = "TRY"):
        self.session = session
        self.default_currency = default_currency

    def _insert(self):
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            raise StoreError(f"unsupported database dialect: {dialect}")
        return insert(OrderRecord)

    async def upsert(self, order: CanonicalOrder) -> UpsertResult:
        """
        Insert-or-partially-update by key.

        1) INSERT … ON CONFLICT DO NOTHING RETURNING id claims the key atomically
        2) on conflict, lock the row and write only the columns that differ
        """
        now = utcnow()
        values = {
            "channel": order.channel,
            "order_number": order.order_number,
            "created_at": order.created_at.astimezone(UTC) if order.created_at else now,
            "first_seen_at": now,
            "updated_at": now,
            "customer": order.customer.with_defaults(),
            "items": [i.to_dict() for i in order.items or []],
            "totals": order.totals.with_defaults(self.default_currency),
            "payment": order.payment.with_defaults(),
            "delivery": initial_delivery(order),
            "supplier": dict(order.supplier or {}),
            "notes": order.notes or "",
            "raw": order.raw,
        }

        with _guard("upsert"):
            stmt = (
                self._insert()
                .values(**values)
                .on_conflict_do_nothing(index_elements=list(_KEY))
                .returning(OrderRecord.id)
            )
            new_id = (await self.session.execute(stmt)).scalar()
            if new_id is not None:
                log.info("order inserted %s:%s id=%s", order.channel, order.order_number, new_id)
                return UpsertResult(matched=0, modified=0, inserted=1)

            row = await self._locked(order.order_number, order.channel)
            if row is None:
                # conflicting row vanished between statements; nothing else deletes orders
                raise StoreError(f"order {order.channel}:{order.order_number} disappeared during upsert")

            changes = merge_order(row, order)
            if not changes:
                return UpsertResult(matched=1, modified=0, inserted=0)

            for col, val in changes.items():
                setattr(row, col, val)
            row.updated_at = now
            await self.session.flush()

        log.info(
            "order updated %s:%s fields=%s",
            order.channel,
            order.order_number,
            ",".join(sorted(changes)),
        )
        return UpsertResult(matched=1, modified=1, inserted=0)

    async def _locked(self, order_number: str, channel: str) -> Optional[OrderRecord]:
        stmt = (
            select(OrderRecord)
            .where(OrderRecord.channel == channel, OrderRecord.order_number == order_number)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def find_by_order_number(self, order_number: str, channel: Optional[str] = None) -> OrderRecord:
        number = (order_number or "").strip()
        stmt = select(OrderRecord).where(OrderRecord.order_number == number)
        if channel:
            stmt = stmt.where(OrderRecord.channel == channel.strip().lower())
        stmt = stmt.order_by(OrderRecord.id.asc()).limit(1)
        with _guard("find"):
            row = (await self.session.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise OrderNotFound(number, channel)
        return row

    async def update_delivery(self, record: OrderRecord, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge keys into the delivery sub-record under a row lock.
        Returns the new delivery document.
        """
        with _guard("update_delivery"):
            row = await self._locked(record.order_number, record.channel)
            if row is None:
                raise OrderNotFound(record.order_number, record.channel)
            delivery = {**(row.delivery or {}), **fields}
            if delivery != (row.delivery or {}):
                row.delivery = delivery
                row.updated_at = utcnow()
                await self.session.flush()
        return delivery

    async def list_recent(self, limit: int = 2000) -> List[OrderRecord]:
        stmt = (
            select(OrderRecord)
            .order_by(OrderRecord.created_at.desc(), OrderRecord.id.desc())
            .limit(limit)
        )
        with _guard("list"):
            return list((await self.session.execute(stmt)).scalars().all())

    async def list_trackable(self, limit: int = 500) -> List[OrderRecord]:
        """
        Recent orders with an official reference or tracking number that are not DELIVERED yet.
        """
        out: List[OrderRecord] = []
        for row in await self.list_recent(limit):
            d = row.delivery or {}
            if DeliveryStage.parse(d.get("stage")) is DeliveryStage.DELIVERED:
                continue
            if d.get("referenceId") or d.get("trackingNumber"):
                out.append(row)
        return out

    async def save_label(
        self,
        *,
        record: Optional[OrderRecord],
        reference_id: str,
        label_format: str,
        paper_size: str,
        file_name: str,
        content_b64: str,
    ) -> ShippingLabel:
        label = ShippingLabel(
            order_id=record.id if record is not None else None,
            reference_id=reference_id,
            label_format=label_format,
            paper_size=paper_size,
            file_name=file_name,
            content_b64=content_b64,
        )
        with _guard("save_label"):
            self.session.add(label)
            await self.session.flush()
        return label

    async def archive_raw_event(self, *, channel: str, reason: str, payload: Any) -> RawOrderEvent:
        event = RawOrderEvent(channel=channel, reason=reason, payload=payload)
        with _guard("archive_raw_event"):
            self.session.add(event)
            await self.session.flush()
        return event
