# orderdesk/db/base.py
from __future__ import annotations

import importlib
import logging

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, configure_mappers

log = logging.getLogger("orderdesk.models")

# JSONB on PostgreSQL, plain JSON elsewhere (sqlite in tests)
JsonDoc = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Single ORM Base for the whole project."""

    pass


_MODEL_MODULES = (
    "orderdesk.models.order_record",
    "orderdesk.models.shipping_label",
    "orderdesk.models.raw_order_event",
)

_INITIALIZED: bool = False


def init_models(*, force: bool = False) -> None:
    """
    Import every model module so Base.metadata is complete, then configure mappers.
    """
    global _INITIALIZED
    if _INITIALIZED and not force:
        return

    for mod in _MODEL_MODULES:
        importlib.import_module(mod)
    configure_mappers()
    _INITIALIZED = True
    log.debug("models initialized: %s", ", ".join(sorted(Base.metadata.tables)))
