from __future__ import annotations

import time
import uuid
from collections.abc import Callable

import sentry_sdk
import structlog
from fastapi import Request, Response

REQUEST_ID_HEADER = "X-Request-ID"


def _request_context(request: Request, rid: str) -> dict[str, str]:
    context = {"request_id": rid, "path": request.url.path, "method": request.method}
    # Store operations are scoped by device; carry it so store logs can be grouped
    device_id = request.query_params.get("device_id")
    if device_id:
        context["device_id"] = device_id
    return context


async def request_id_middleware(request: Request, call_next: Callable) -> Response:
    """Propagate ``X-Request-ID`` and write one ``http_request`` access log per request.

    The id (inbound header or a fresh UUID4) and the device scope are bound to
    structlog contextvars for the duration of the request.
    """
    logger = structlog.get_logger(__name__)
    rid = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    structlog.contextvars.bind_contextvars(**_request_context(request, rid))
    sentry_sdk.set_tag("request_id", rid)

    client_ip = request.client.host if request.client else "-"
    started = time.perf_counter()
    status = 500
    try:
        response = await call_next(request)
        status = response.status_code
        response.headers[REQUEST_ID_HEADER] = rid
        return response
    finally:
        elapsed_ms = round((time.perf_counter() - started) * 1000, 3)
        log = logger.info if status < 500 else logger.error
        log("http_request", status=status, duration_ms=elapsed_ms, client_ip=client_ip)
        structlog.contextvars.clear_contextvars()
