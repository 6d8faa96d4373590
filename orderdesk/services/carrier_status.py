# orderdesk/services/carrier_status.py
from __future__ import annotations

import unicodedata
from typing import Any, Dict, Sequence, Tuple

CREATED = "CREATED"
IN_TRANSIT = "IN_TRANSIT"
OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
DELIVERED = "DELIVERED"
UNKNOWN = "UNKNOWN"


def fold(text: Any) -> str:
    """
    Case- and accent-insensitive form for keyword matching.
    "TESLİM EDİLDİ", "Teslim edildi" and "teslim edildi" fold to the same string.
    """
    s = unicodedata.normalize("NFKD", str(text or ""))
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    return s.lower().replace("ı", "i").strip()


# Checked top to bottom; more specific phrases come first.
# Failed / attempted deliveries must never read as DELIVERED.
STATUS_KEYWORDS: Tuple[Tuple[str, Sequence[str]], ...] = (
    (
        IN_TRANSIT,
        (
            "not delivered",
            "undelivered",
            "delivery failed",
            "failed delivery",
            "delivery attempt",
            "attempted",
            "teslim edilemedi",
            "teslimat basarisiz",
        ),
    ),
    (
        OUT_FOR_DELIVERY,
        ("out for delivery", "out_for_delivery", "dağıtıma çıkt", "dağıtımda", "kuryede"),
    ),
    (
        IN_TRANSIT,
        (
            "in transit",
            "in_transit",
            "transit",
            "shipped",
            "picked up",
            "transfer",
            "yolda",
            "kargoya verildi",
            "şubede",
            "aktarma",
            "taşıma",
        ),
    ),
    (
        DELIVERED,
        ("delivered", "teslim edildi", "teslim alındı", "teslim"),
    ),
    (
        CREATED,
        ("created", "order received", "registered", "oluşturuldu", "kaydedildi", "hazırlanıyor"),
    ),
)

_FOLDED_KEYWORDS = tuple((status, tuple(fold(k) for k in kws)) for status, kws in STATUS_KEYWORDS)

# Vocabulary rank, used to refuse stale carrier answers.
STATUS_RANK: Dict[str, int] = {
    UNKNOWN: 0,
    CREATED: 1,
    IN_TRANSIT: 2,
    OUT_FOR_DELIVERY: 3,
    DELIVERED: 4,
}


def normalize_status(text: Any) -> str:
    """Free carrier text (English / Turkish) → normalized vocabulary."""
    s = fold(text)
    if not s:
        return UNKNOWN
    if s.upper() in STATUS_RANK:
        return s.upper()
    for status, keywords in _FOLDED_KEYWORDS:
        for kw in keywords:
            if kw in s:
                return status
    return UNKNOWN
