# orderdesk/api/deps.py
from __future__ import annotations

import hmac
from typing import Iterable, Optional

from fastapi import Depends, Header, Query

from orderdesk.core.config import AppSettings, get_settings
from orderdesk.services.carrier_client import CarrierClient
from orderdesk.services.carrier_token_cache import get_token_cache
from orderdesk.services.errors import AuthError


def _bearer(authorization: Optional[str]) -> str:
    a = (authorization or "").strip()
    return a[7:].strip() if a.lower().startswith("bearer ") else ""


def _matches(given: str, accepted: Iterable[str]) -> bool:
    given = (given or "").strip()
    if not given:
        return False
    return any(hmac.compare_digest(given.encode(), k.encode()) for k in accepted if k)


def require_webhook_token(
    token: Optional[str] = Query(default=None),
    x_webhook_token: Optional[str] = Header(default=None),
    authorization: Optional[str] = Header(default=None),
    settings: AppSettings = Depends(get_settings),
) -> None:
    """?token=, X-Webhook-Token or Authorization: Bearer; open when no token is configured."""
    if not settings.WEBHOOK_TOKEN:
        return
    given = token or x_webhook_token or _bearer(authorization)
    if not _matches(given or "", [settings.WEBHOOK_TOKEN]):
        raise AuthError()


def require_export_token(
    key: Optional[str] = Query(default=None),
    x_api_key: Optional[str] = Header(default=None),
    authorization: Optional[str] = Header(default=None),
    settings: AppSettings = Depends(get_settings),
) -> None:
    if not settings.EXPORT_TOKEN:
        return
    given = key or x_api_key or _bearer(authorization)
    if not _matches(given or "", [settings.EXPORT_TOKEN]):
        raise AuthError()


def require_internal_key(
    x_api_key: Optional[str] = Header(default=None),
    authorization: Optional[str] = Header(default=None),
    settings: AppSettings = Depends(get_settings),
) -> None:
    keys = settings.internal_keys()
    if not keys:
        return
    if not _matches(x_api_key or _bearer(authorization), keys):
        raise AuthError()


def get_carrier_client(settings: AppSettings = Depends(get_settings)) -> CarrierClient:
    return CarrierClient(settings, get_token_cache())
