# orderdesk/services/carrier_types.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Attempt:
    """One fallback strategy: endpoint + JSON body (None = no body)."""

    url: str
    body: Optional[Dict[str, Any]] = None
    method: str = "POST"


@dataclass
class ShipmentRef:
    reference_id: str
    tracking_number: Optional[str] = None
    courier: Optional[str] = None
    duplicate: bool = False


@dataclass
class CarrierStatus:
    status: str  # CREATED / IN_TRANSIT / OUT_FOR_DELIVERY / DELIVERED / UNKNOWN
    raw_status: str = ""
    delivered_at: Optional[datetime] = None
    tracking_number: Optional[str] = None
    raw_payload: Dict[str, Any] = field(default_factory=dict)
