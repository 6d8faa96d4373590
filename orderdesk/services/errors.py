# orderdesk/services/errors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence


class OrderDeskError(Exception):
    code = "ORDERDESK_ERROR"
    status = 400

    def __init__(self, message: str, code: str | None = None, status: int | None = None):
        super().__init__(message)
        if code:
            self.code = code
        if status:
            self.status = status
        self.message = message

    def to_payload(self) -> Dict[str, Any]:
        return {"ok": False, "error": self.message, "code": self.code}


class NormalizationError(OrderDeskError):
    code = "NORMALIZATION_ERROR"
    status = 400


class MissingIdentifier(NormalizationError):
    code = "MISSING_IDENTIFIER"

    def __init__(self, message: str = "missing orderNumber"):
        super().__init__(message)


class AuthError(OrderDeskError):
    code = "UNAUTHORIZED"
    status = 401

    def __init__(self, message: str = "unauthorized"):
        super().__init__(message)


class OrderNotFound(OrderDeskError):
    code = "NOT_FOUND"
    status = 404

    def __init__(self, order_number: str, channel: Optional[str] = None):
        where = f"{channel}:{order_number}" if channel else order_number
        super().__init__(f"order not found: {where}")
        self.order_number = order_number
        self.channel = channel


class StoreError(OrderDeskError):
    code = "STORE_ERROR"
    status = 500


@dataclass(frozen=True)
class AttemptFailure:
    """One failed fallback attempt against the carrier."""

    url: str
    status_code: Optional[int]
    detail: str

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "status": self.status_code, "detail": self.detail}


class CarrierUnavailable(OrderDeskError):
    """
    Every candidate endpoint of a carrier operation failed or answered without a
    recognizable payload. Carries each attempt for diagnostics.
    """

    code = "CARRIER_UNAVAILABLE"
    status = 502

    def __init__(self, operation: str, attempts: Sequence[AttemptFailure] = (), message: str | None = None):
        self.operation = operation
        self.attempts: List[AttemptFailure] = list(attempts)
        super().__init__(message or f"carrier {operation} failed after {len(self.attempts)} attempt(s)")

    @property
    def last_error_body(self) -> str:
        return self.attempts[-1].detail if self.attempts else ""

    def to_payload(self) -> Dict[str, Any]:
        out = super().to_payload()
        out["operation"] = self.operation
        out["attempts"] = [a.to_dict() for a in self.attempts]
        return out
