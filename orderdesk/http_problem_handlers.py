# orderdesk/http_problem_handlers.py
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from orderdesk.services.errors import OrderDeskError

logger = logging.getLogger("orderdesk")


def _new_trace_id() -> str:
    return f"t_{uuid.uuid4().hex[:12]}"


def _body(error: str, code: str, trace_id: str, **extra: Any) -> Dict[str, Any]:
    out: Dict[str, Any] = {"ok": False, "error": error, "code": code, "traceId": trace_id}
    out.update(extra)
    return out


def register_exception_handlers(app: FastAPI) -> None:
    """Every error leaves the API as {ok:false, error, code, traceId}."""

    @app.exception_handler(OrderDeskError)
    async def _orderdesk_exc(req: Request, exc: OrderDeskError):
        trace_id = _new_trace_id()
        content = exc.to_payload()
        content["traceId"] = trace_id
        if exc.status >= 500:
            logger.error("%s[%s] %s %s: %s", exc.code, trace_id, req.method, req.url.path, exc.message)
        else:
            logger.info("%s[%s] %s %s: %s", exc.code, trace_id, req.method, req.url.path, exc.message)
        return JSONResponse(status_code=exc.status, content=content)

    @app.exception_handler(RequestValidationError)
    async def _validation_exc(req: Request, exc: RequestValidationError):
        details = [
            {"path": ".".join(str(p) for p in e.get("loc", ())), "reason": str(e.get("msg") or "invalid")}
            for e in exc.errors()
            if isinstance(e, dict)
        ]
        return JSONResponse(
            status_code=422,
            content=_body("invalid request", "REQUEST_VALIDATION_ERROR", _new_trace_id(), details=details),
        )

    @app.exception_handler(HTTPException)
    async def _http_exc(req: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=_body(str(exc.detail), "HTTP_ERROR", _new_trace_id()),
        )

    @app.exception_handler(Exception)
    async def _unhandled_exc(req: Request, exc: Exception):
        trace_id = _new_trace_id()
        logger.exception("UNHANDLED_EXC[%s]: %s", trace_id, exc)
        return JSONResponse(status_code=500, content=_body("internal error", "INTERNAL_ERROR", trace_id))
