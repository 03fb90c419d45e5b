"""Prometheus metrics for the agent: request counters/latency, snapshot refreshes, host gauges."""

import logging
import threading
import time
from typing import Optional, Tuple

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Gauge, Histogram, generate_latest

from beacon.core.snapshot import HostStats

logger = logging.getLogger(__name__)


class Metrics:
    """Owns one CollectorRegistry; the data-plane /api/metrics serializes it in text exposition format."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self._lock = threading.Lock()
        self._started = time.time()
        self.registry = registry if registry is not None else CollectorRegistry()
        r = self.registry

        self.http_requests = Counter(
            "beacon_http_requests_total",
            "HTTP requests handled, by listener, method, route and status",
            ["listener", "method", "path", "status"],
            registry=r,
        )
        self.http_duration = Histogram(
            "beacon_http_request_duration_seconds",
            "HTTP request latency",
            ["listener", "method", "path"],
            registry=r,
        )
        self.snapshot_refreshes = Counter(
            "beacon_snapshot_refresh_total", "System snapshot refreshes", registry=r
        )
        self.config_saves = Counter("beacon_config_saves_total", "Dashboard config saves", registry=r)
        self.host_cpu_percent = Gauge("beacon_host_cpu_percent", "Host CPU utilisation (percent)", registry=r)
        self.host_memory_used = Gauge("beacon_host_memory_used_bytes", "Host memory in use", registry=r)
        self.host_memory_percent = Gauge("beacon_host_memory_percent", "Host memory in use (percent)", registry=r)
        self.host_disk_percent = Gauge("beacon_host_disk_percent", "Root filesystem in use (percent)", registry=r)
        uptime = Gauge("beacon_uptime_seconds", "Seconds since the agent started", registry=r)
        uptime.set_function(lambda: time.time() - self._started)

        self._last_stats: Optional[HostStats] = None

    def observe_request(self, listener: str, method: str, path: str, status: int, duration_sec: float) -> None:
        self.http_requests.labels(listener=listener, method=method, path=path, status=str(status)).inc()
        self.http_duration.labels(listener=listener, method=method, path=path).observe(duration_sec)

    def observe_snapshot(self, stats: HostStats) -> None:
        """Count one refresh and publish its values on the host gauges."""
        self.snapshot_refreshes.inc()
        self.host_cpu_percent.set(stats.cpu_percent)
        self.host_memory_used.set(stats.memory_used)
        self.host_memory_percent.set(stats.memory_percent)
        self.host_disk_percent.set(stats.disk_percent)
        with self._lock:
            self._last_stats = stats

    def inc_config_saves(self) -> None:
        self.config_saves.inc()

    def render(self) -> Tuple[bytes, str]:
        """Return (body, content_type) in Prometheus text exposition format."""
        return generate_latest(self.registry), CONTENT_TYPE_LATEST

    def log_snapshot(self) -> None:
        """Log the last published host stats."""
        with self._lock:
            stats = self._last_stats
        if stats is None:
            logger.info("metrics host=unknown")
            return
        logger.info(
            "metrics cpu_percent=%.1f memory_percent=%.1f disk_percent=%.1f processes=%s",
            stats.cpu_percent,
            stats.memory_percent,
            stats.disk_percent,
            stats.process_count,
        )


_global_metrics: Optional[Metrics] = None


def get_metrics() -> Metrics:
    global _global_metrics
    if _global_metrics is None:
        _global_metrics = Metrics()
    return _global_metrics
