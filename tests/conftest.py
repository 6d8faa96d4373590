# tests/conftest.py
from __future__ import annotations

from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from orderdesk.api.deps import get_carrier_client
from orderdesk.core.config import AppSettings, get_settings
from orderdesk.db.base import Base, init_models
from orderdesk.db.session import get_session
from orderdesk.main import app
from orderdesk.services.carrier_client import CarrierClient
from orderdesk.services.carrier_token_cache import CarrierTokenCache

from tests.helpers.carrier import CARRIER, FakeCarrier


# =========================================
# per-test SQLite database (NullPool, no cross-loop reuse)
# =========================================
@pytest_asyncio.fixture(scope="function")
async def async_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}",
        poolclass=NullPool,
        future=True,
    )
    init_models()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture(scope="function")
def async_session_maker(async_engine: AsyncEngine):
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def session(async_session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as sess:
        try:
            yield sess
            if sess.in_transaction():
                await sess.commit()
        except Exception:
            if sess.in_transaction():
                await sess.rollback()
            raise


@pytest.fixture(scope="function")
def settings() -> AppSettings:
    return AppSettings(
        WEBHOOK_TOKEN="hook-secret",
        EXPORT_TOKEN="export-secret",
        INTERNAL_API_KEYS="internal-key",
        CARRIER_CLIENT_ID="cid",
        CARRIER_CLIENT_SECRET="csecret",
        CARRIER_CUSTOMER_NUMBER="123456",
        CARRIER_PASSWORD="pw",
        CARRIER_TOKEN_URL=f"{CARRIER}/token",
        CARRIER_CREATE_ORDER_URL=f"{CARRIER}/ecommerce/createOrder",
        CARRIER_STANDARD_CMD_URL=f"{CARRIER}/standardcmdapi",
        CARRIER_LABEL_URL=f"{CARRIER}/barcodecmdapi/getLabel",
        CARRIER_STANDARD_QUERY_URL=f"{CARRIER}/standardqueryapi",
        CARRIER_TRACK_URL=f"{CARRIER}/track",
    )


# =========================================
# fake carrier gateway (httpx.MockTransport)
# =========================================
@pytest.fixture(scope="function")
def carrier() -> FakeCarrier:
    return FakeCarrier()


@pytest.fixture(scope="function")
def token_cache(settings, carrier) -> CarrierTokenCache:
    return CarrierTokenCache(settings, transport=httpx.MockTransport(carrier))


@pytest.fixture(scope="function")
def carrier_client(settings, carrier, token_cache) -> CarrierClient:
    return CarrierClient(settings, token_cache, transport=httpx.MockTransport(carrier))


# =========================================
# ASGI client with DB / settings / carrier overrides
# =========================================
@pytest_asyncio.fixture(scope="function")
async def client(async_session_maker, settings, carrier_client) -> AsyncGenerator[httpx.AsyncClient, None]:
    async def _session() -> AsyncGenerator[AsyncSession, None]:
        async with async_session_maker() as s:
            yield s

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_carrier_client] = lambda: carrier_client
    transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            yield c
    finally:
        app.dependency_overrides.clear()
