# orderdesk/metrics.py
from __future__ import annotations

import os

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, CollectorRegistry, Counter, generate_latest, multiprocess

ORDERS_INGESTED = Counter(
    "orders_ingested_total", "Inbound order payloads by outcome", ["channel", "result"]
)
CARRIER_ATTEMPTS = Counter(
    "carrier_attempts_total", "Carrier fallback attempts", ["operation", "outcome"]
)
DELIVERY_TRANSITIONS = Counter(
    "delivery_transitions_total", "Delivery stage transitions applied", ["stage"]
)

router = APIRouter()


@router.get("/metrics")
def metrics() -> Response:
    """
    Single process: default REGISTRY.
    Multi-process (PROMETHEUS_MULTIPROC_DIR set): merge the shard files.
    """
    if os.environ.get("PROMETHEUS_MULTIPROC_DIR"):
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        payload = generate_latest(registry)
    else:
        payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)
