"""SystemSnapshot: last observed host resource state behind a lock; HostStats: one immutable observation."""

import logging
import os
import threading
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Optional

import psutil

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HostStats:
    """Immutable snapshot of host resources (bytes for sizes, percent 0..100)."""

    cpu_percent: float
    cpu_count: int
    memory_total: int
    memory_used: int
    memory_available: int
    memory_percent: float
    swap_total: int
    swap_used: int
    disk_total: int
    disk_used: int
    disk_percent: float
    process_count: int
    boot_time: float
    # None where the platform has no load average
    load_avg_1m: Optional[float] = None
    load_avg_5m: Optional[float] = None
    load_avg_15m: Optional[float] = None
    ts: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def read_host_stats(disk_path: str = "/") -> HostStats:
    """Query the OS via psutil. cpu_percent is non-blocking (since the previous call)."""
    vm = psutil.virtual_memory()
    sw = psutil.swap_memory()
    du = psutil.disk_usage(disk_path)
    try:
        load1, load5, load15 = os.getloadavg()
    except (AttributeError, OSError):
        load1 = load5 = load15 = None
    return HostStats(
        cpu_percent=psutil.cpu_percent(interval=None),
        cpu_count=psutil.cpu_count() or 0,
        memory_total=vm.total,
        memory_used=vm.used,
        memory_available=vm.available,
        memory_percent=vm.percent,
        swap_total=sw.total,
        swap_used=sw.used,
        disk_total=du.total,
        disk_used=du.used,
        disk_percent=du.percent,
        process_count=len(psutil.pids()),
        boot_time=psutil.boot_time(),
        load_avg_1m=load1,
        load_avg_5m=load5,
        load_avg_15m=load15,
        ts=time.time(),
    )


class SystemSnapshot:
    """Thread-safe holder of the latest HostStats.

    Every read and write goes through one lock, so readers never see a half-applied refresh.
    Handlers call refresh()/get() from worker threads (sync FastAPI routes), never from the event loop.
    """

    def __init__(self, probe: Optional[Callable[[], HostStats]] = None, initial_refresh: bool = True):
        self._lock = threading.Lock()
        self._probe = probe or read_host_stats
        self._stats: Optional[HostStats] = None
        self._refresh_count = 0
        self._last_refreshed: Optional[float] = None
        if initial_refresh:
            self.refresh()

    def refresh(self) -> HostStats:
        """Re-read all host metrics. Probe errors propagate; the previous stats are kept."""
        with self._lock:
            stats = self._probe()
            self._stats = stats
            self._refresh_count += 1
            self._last_refreshed = time.time()
            count = self._refresh_count
        logger.debug("snapshot refreshed count=%s cpu=%.1f mem=%.1f", count, stats.cpu_percent, stats.memory_percent)
        return stats

    def get(self) -> Optional[HostStats]:
        with self._lock:
            return self._stats

    @property
    def refresh_count(self) -> int:
        with self._lock:
            return self._refresh_count

    @property
    def last_refreshed(self) -> Optional[float]:
        with self._lock:
            return self._last_refreshed

    def as_payload(self) -> Dict[str, Any]:
        """Current stats plus refresh bookkeeping, read in one critical section."""
        with self._lock:
            stats = self._stats
            count = self._refresh_count
            last = self._last_refreshed
        return {
            "stats": stats.to_dict() if stats is not None else None,
            "refresh_count": count,
            "last_refreshed": last,
        }
