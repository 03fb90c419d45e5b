"""Core: shared system snapshot, Prometheus metrics, logging utilities."""

from beacon.core.metrics import Metrics, get_metrics
from beacon.core.snapshot import HostStats, SystemSnapshot, read_host_stats

__all__ = ["HostStats", "Metrics", "SystemSnapshot", "get_metrics", "read_host_stats"]
