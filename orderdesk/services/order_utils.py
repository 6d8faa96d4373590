# orderdesk/services/order_utils.py
from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

UTC = timezone.utc

_NUM_JUNK = re.compile(r"[^\d,.\-+]")


def clean_str(x: Any) -> Optional[str]:
    """
    Trimmed string, or None when the value is missing/blank.
    Containers are not strings: they yield None.
    """
    if x is None or isinstance(x, (dict, list, tuple, set)):
        return None
    if isinstance(x, bool):
        return "true" if x else "false"
    s = str(x).strip()
    return s or None


def to_number(x: Any) -> Optional[float]:
    """
    Lenient numeric parse; None when there is no usable number.

    Accepts numbers, numeric strings ("12.50", "12,50", "₺1.234,50"),
    and money objects such as {"amount": "10.00"} / {"value": 10}.
    """
    if x is None or isinstance(x, bool):
        return None
    if isinstance(x, dict):
        for k in ("amount", "value", "formattedAmount"):
            if k in x:
                return to_number(x.get(k))
        return None
    if isinstance(x, (int, float, Decimal)):
        v = float(x)
        return v if math.isfinite(v) else None

    s = _NUM_JUNK.sub("", str(x).strip())
    if not s:
        return None
    if "," in s and "." in s:
        # the right-most separator is the decimal one
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif "," in s:
        s = s.replace(",", ".")
    try:
        v = float(Decimal(s))
    except (InvalidOperation, ValueError):
        return None
    return v if math.isfinite(v) else None


def to_int_pos(x: Any) -> Optional[int]:
    """Positive integer, or None when invalid or <= 0."""
    v = to_number(x)
    if v is None:
        return None
    iv = int(v)
    return iv if iv > 0 else None


def round_money(x: Optional[float]) -> Optional[float]:
    if x is None:
        return None
    return float(Decimal(str(x)).quantize(Decimal("0.01")))


def parse_dt(x: Any) -> Optional[datetime]:
    """
    Timestamp fields → tz-aware datetime (UTC when no offset is given).
    Accepts datetime, ISO-8601 strings (with 'Z'), epoch seconds or milliseconds.
    """
    if x is None or isinstance(x, bool):
        return None
    if isinstance(x, dict):
        # {"$date": "..."} exports
        return parse_dt(x.get("$date"))
    if isinstance(x, datetime):
        return x if x.tzinfo is not None else x.replace(tzinfo=UTC)
    if isinstance(x, (int, float)):
        ts = float(x)
        if ts > 1e12:
            ts = ts / 1000.0
        try:
            return datetime.fromtimestamp(ts, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    s = str(x).strip()
    if not s:
        return None
    if s.isdigit():
        return parse_dt(int(s))
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=UTC)


def utcnow() -> datetime:
    return datetime.now(UTC)


def iso(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat()
