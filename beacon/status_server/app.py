"""FastAPI apps for the two listeners.

Data-plane (api_port): GET /api/health, /api/metrics, /api/logs, /api/sysinfo, GET /dashboard, POST /dashboard/save.
Control-plane (orchestrator_port): GET /status heartbeat only.
Shared state (SystemSnapshot, Metrics, LogBuffer) is passed in; nothing here is module-global except the cached HTML."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response
from starlette.concurrency import run_in_threadpool

from beacon.core.logging_utils import LogBuffer, log_config_save
from beacon.core.metrics import Metrics
from beacon.core.snapshot import SystemSnapshot
from beacon.status_server.middleware import install_request_middleware

logger = logging.getLogger(__name__)

HEALTHY_BODY = "Healthy"
SAVE_PATH = "/dashboard/save"
DEFAULT_REQUEST_TIMEOUT_SEC = 10.0

_DASHBOARD_HTML: Optional[str] = None


def _load_dashboard_html() -> str:
    global _DASHBOARD_HTML
    if _DASHBOARD_HTML is not None:
        return _DASHBOARD_HTML
    p = Path(__file__).resolve().parent / "templates" / "dashboard.html"
    if p.exists():
        _DASHBOARD_HTML = p.read_text(encoding="utf-8")
    else:
        _DASHBOARD_HTML = "<!DOCTYPE html><html><body><p>Dashboard template not found.</p><a href='/api/health'>/api/health</a></body></html>"
    return _DASHBOARD_HTML


def format_save_ack(name: str, value: str) -> str:
    """Confirmation body for a config save. Served as text/plain with nosniff, so input is echoed verbatim."""
    return f"Saved {name}: {value}"


def create_api_app(
    snapshot: SystemSnapshot,
    metrics: Metrics,
    log_buffer: Optional[LogBuffer] = None,
    request_timeout_sec: float = DEFAULT_REQUEST_TIMEOUT_SEC,
) -> FastAPI:
    """Build the data-plane app. The blocking probe always runs in the threadpool, never on the event loop."""
    app = FastAPI(title="Beacon Agent API", description="Host health, metrics and configuration")
    # a save must not answer 504 while its refresh is still running in the threadpool
    install_request_middleware(app, "api", metrics, request_timeout_sec, timeout_exempt_paths=(SAVE_PATH,))

    @app.get("/api/health", response_class=PlainTextResponse)
    async def health_check() -> str:
        return HEALTHY_BODY

    @app.get("/api/metrics")
    def get_metrics_text() -> Response:
        """Prometheus text exposition of the agent registry. Encoding errors become a 500, not a crash."""
        try:
            body, content_type = metrics.render()
        except Exception:
            logger.exception("metrics serialization failed")
            return PlainTextResponse("metrics unavailable", status_code=500)
        return Response(content=body, media_type=content_type)

    @app.get("/api/logs")
    def get_logs() -> List[Dict[str, str]]:
        """Recent agent log records, oldest first: [{timestamp, level, message}, ...]."""
        if log_buffer is None:
            return []
        return log_buffer.records()

    @app.get("/api/sysinfo")
    def get_sysinfo() -> Dict[str, Any]:
        """Current host stats as last refreshed (does not trigger a refresh)."""
        return snapshot.as_payload()

    @app.get("/dashboard", response_class=HTMLResponse)
    def get_dashboard() -> str:
        return _load_dashboard_html()

    def _refresh_for_save(name: str, value: str) -> None:
        stats = snapshot.refresh()
        metrics.observe_snapshot(stats)
        metrics.inc_config_saves()
        log_config_save(name, value, refresh_count=snapshot.refresh_count)

    @app.post(SAVE_PATH, response_class=PlainTextResponse)
    async def save_config(request: Request) -> Response:
        """Refresh the system snapshot and acknowledge the submitted pair. Nothing is persisted.

        Both fields must be present; empty strings are valid values. The refresh runs in the threadpool.
        """
        form = await request.form()
        name, value = form.get("name"), form.get("value")
        missing = [k for k, v in (("name", name), ("value", value)) if not isinstance(v, str)]
        if missing:
            return JSONResponse(status_code=422, content={"error": "missing form field(s)", "missing": missing})
        try:
            await run_in_threadpool(_refresh_for_save, name, value)
        except Exception:
            logger.exception("snapshot refresh failed during config save name=%r", name)
            return PlainTextResponse("snapshot refresh failed", status_code=500)
        return PlainTextResponse(format_save_ack(name, value), headers={"X-Content-Type-Options": "nosniff"})

    return app


def create_orchestrator_app(
    metrics: Metrics,
    request_timeout_sec: float = DEFAULT_REQUEST_TIMEOUT_SEC,
) -> FastAPI:
    """Build the control-plane app: a single liveness endpoint for the orchestrator."""
    app = FastAPI(title="Beacon Agent Control", description="Orchestrator heartbeat")
    install_request_middleware(app, "orchestrator", metrics, request_timeout_sec)

    @app.get("/status", response_class=PlainTextResponse)
    async def get_status() -> str:
        return HEALTHY_BODY

    return app
