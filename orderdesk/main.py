# orderdesk/main.py
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from orderdesk import __version__
from orderdesk.api.routers.carrier import router as carrier_router
from orderdesk.api.routers.export import router as export_router
from orderdesk.api.routers.health import router as health_router
from orderdesk.api.routers.track_public import router as track_public_router
from orderdesk.api.routers.webhook import router as webhook_router
from orderdesk.core.config import get_settings
from orderdesk.core.logging import setup_logging
from orderdesk.db.session import close_engine
from orderdesk.http_problem_handlers import register_exception_handlers
from orderdesk.metrics import router as metrics_router


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    await close_engine()


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, json=settings.JSON_LOG)

    app = FastAPI(
        title="orderdesk",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # the public tracking widget is embedded in the storefront
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(webhook_router)
    app.include_router(carrier_router)
    app.include_router(export_router)
    app.include_router(track_public_router)
    app.include_router(health_router)
    app.include_router(metrics_router)
    return app


app = create_app()
