# orderdesk/services/carrier_token_cache.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Optional

import httpx
import jwt

from orderdesk.core.config import AppSettings, get_settings
from orderdesk.services.carrier_types import Attempt
from orderdesk.services.errors import AttemptFailure, CarrierUnavailable
from orderdesk.services.order_paths import first_value

log = logging.getLogger("orderdesk.carrier.token")

TOKEN_KEYS = ("accessToken", "access_token", "token", "jwt", "data.accessToken", "data.token")


@dataclass
class CachedToken:
    value: str
    expires_at: float  # epoch seconds, safety margin not yet applied


def _jwt_exp(token: str) -> Optional[float]:
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return None
    exp = claims.get("exp")
    return float(exp) if isinstance(exp, (int, float)) else None


def _response_exp(doc: Dict[str, Any], now: float) -> Optional[float]:
    expires_in = first_value([doc], ("expires_in", "expiresIn", "data.expires_in"), "number")
    if expires_in:
        return now + expires_in
    at = first_value([doc], ("jwtExpireDate", "expireDate", "data.jwtExpireDate"), "datetime")
    return at.timestamp() if at is not None else None


class CarrierTokenCache:
    """
    Process-wide carrier bearer token.

    Expiry: JWT `exp` → response expiry → fixed TTL. A token is never served
    within `safety_margin` seconds of expiry. No lock is held across I/O:
    two cold-cache callers may both fetch, the last one wins.
    """

    def __init__(self, settings: AppSettings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport
        self._token: Optional[CachedToken] = None

    def _headers(self) -> Dict[str, str]:
        s = self.settings
        h = {"Accept": "application/json", "Content-Type": "application/json"}
        if s.CARRIER_CLIENT_ID:
            h["X-IBM-Client-Id"] = s.CARRIER_CLIENT_ID
        if s.CARRIER_CLIENT_SECRET:
            h["X-IBM-Client-Secret"] = s.CARRIER_CLIENT_SECRET
        return h

    def _attempts(self) -> List[Attempt]:
        s = self.settings
        url = s.CARRIER_TOKEN_URL
        if not url:
            return []
        return [
            Attempt(url, None, "POST"),
            Attempt(url, None, "GET"),
            Attempt(
                url,
                {
                    "customerNumber": s.CARRIER_CUSTOMER_NUMBER,
                    "password": s.CARRIER_PASSWORD,
                    "identityType": s.CARRIER_IDENTITY_TYPE,
                },
                "POST",
            ),
        ]

    def _valid(self, now: float) -> bool:
        margin = self.settings.CARRIER_TOKEN_SAFETY_MARGIN_SECONDS
        return self._token is not None and now < self._token.expires_at - margin

    async def get_token(self) -> str:
        now = time.time()
        if self._valid(now):
            return self._token.value  # type: ignore[union-attr]
        token = await self._fetch()
        margin = self.settings.CARRIER_TOKEN_SAFETY_MARGIN_SECONDS
        if token.expires_at - margin <= time.time():
            # usable once, never cached
            log.warning(
                "carrier issued a token expiring in %ds (safety margin %ds)",
                int(token.expires_at - time.time()),
                margin,
            )
            self._token = None
            return token.value
        self._token = token
        return token.value

    def invalidate(self) -> None:
        self._token = None

    async def _fetch(self) -> CachedToken:
        failures: List[AttemptFailure] = []
        attempts = self._attempts()
        if not attempts:
            raise CarrierUnavailable("token", message="carrier token url is not configured")

        async with httpx.AsyncClient(
            timeout=self.settings.CARRIER_TIMEOUT_SECONDS, transport=self.transport
        ) as client:
            for a in attempts:
                try:
                    resp = await client.request(a.method, a.url, headers=self._headers(), json=a.body)
                except httpx.HTTPError as exc:
                    failures.append(AttemptFailure(a.url, None, f"{a.method} {exc.__class__.__name__}: {exc}"))
                    continue

                try:
                    doc = resp.json()
                except ValueError:
                    doc = None

                value = first_value([doc], TOKEN_KEYS, "str") if isinstance(doc, dict) else None
                if resp.is_success and value:
                    now = time.time()
                    exp = _jwt_exp(value) or _response_exp(doc, now)
                    if exp is None:
                        exp = now + self.settings.CARRIER_TOKEN_TTL_SECONDS
                    log.info("carrier token issued via %s (expires in %ds)", a.method, int(exp - now))
                    return CachedToken(value=value, expires_at=exp)

                failures.append(AttemptFailure(a.url, resp.status_code, f"{a.method} {resp.text[:300]}"))

        log.warning("carrier token request failed: %s", [f.to_dict() for f in failures])
        raise CarrierUnavailable("token", failures)


@lru_cache
def get_token_cache() -> CarrierTokenCache:
    return CarrierTokenCache(get_settings())


def reset_token_cache() -> None:
    get_token_cache.cache_clear()
