"""Per-listener HTTP middleware: request timeout, Prometheus request metrics, audit log line."""

import asyncio
import logging
import time

from typing import Iterable

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from beacon.core.logging_utils import log_request
from beacon.core.metrics import Metrics

logger = logging.getLogger(__name__)

UNMATCHED_PATH = "unmatched"


def _route_label(request: Request) -> str:
    """Route template (bounded cardinality); the router stores the matched route in scope."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or UNMATCHED_PATH


def install_request_middleware(
    app: FastAPI,
    listener: str,
    metrics: Metrics,
    request_timeout_sec: float,
    timeout_exempt_paths: Iterable[str] = (),
) -> None:
    """Wrap every request on `app`: 504 after request_timeout_sec, count + time it, write one audit line.

    Paths in timeout_exempt_paths run to completion (their side effects cannot be rolled back).
    """
    exempt = frozenset(timeout_exempt_paths)

    @app.middleware("http")
    async def audit_request(request: Request, call_next):
        start = time.perf_counter()
        status = 500
        try:
            if request.url.path in exempt:
                response = await call_next(request)
            else:
                response = await asyncio.wait_for(call_next(request), timeout=request_timeout_sec)
            status = response.status_code
            return response
        except asyncio.TimeoutError:
            status = 504
            logger.warning(
                "request timed out listener=%s method=%s path=%s after %.1fs",
                listener,
                request.method,
                request.url.path,
                request_timeout_sec,
            )
            return PlainTextResponse("request timed out", status_code=504)
        finally:
            duration = time.perf_counter() - start
            metrics.observe_request(listener, request.method, _route_label(request), status, duration)
            client = request.client.host if request.client else None
            log_request(listener, request.method, request.url.path, status, duration * 1000.0, client=client)
