"""Pytest fixtures for Beacon agent tests."""

import sys
import threading
import time
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Ensure project root is in path for beacon imports
_project_root = Path(__file__).resolve().parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from beacon.core.logging_utils import LogBuffer  # noqa: E402
from beacon.core.metrics import Metrics  # noqa: E402
from beacon.core.snapshot import HostStats, SystemSnapshot  # noqa: E402
from beacon.status_server.app import create_api_app, create_orchestrator_app  # noqa: E402


def make_stats(**overrides) -> HostStats:
    """HostStats with plausible fixed values; override any field."""
    fields = dict(
        cpu_percent=12.5,
        cpu_count=4,
        memory_total=8 * 1024**3,
        memory_used=2 * 1024**3,
        memory_available=6 * 1024**3,
        memory_percent=25.0,
        swap_total=0,
        swap_used=0,
        disk_total=100 * 1024**3,
        disk_used=40 * 1024**3,
        disk_percent=40.0,
        process_count=123,
        boot_time=1_700_000_000.0,
        load_avg_1m=0.5,
        load_avg_5m=0.4,
        load_avg_15m=0.3,
        ts=time.time(),
    )
    fields.update(overrides)
    return HostStats(**fields)


class FakeProbe:
    """Counts calls; records the max number of concurrent calls; stats carry the call number in cpu_percent."""

    def __init__(self, delay_sec: float = 0.0, fail: bool = False):
        self.delay_sec = delay_sec
        self.fail = fail
        self.calls = 0
        self.active = 0
        self.max_active = 0
        self._guard = threading.Lock()

    def __call__(self) -> HostStats:
        with self._guard:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            self.calls += 1
            n = self.calls
        try:
            if self.delay_sec:
                time.sleep(self.delay_sec)
            if self.fail:
                raise RuntimeError("probe failed")
            return make_stats(cpu_percent=float(n), ts=float(n))
        finally:
            with self._guard:
                self.active -= 1


@pytest.fixture
def probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture
def snapshot(probe: FakeProbe) -> SystemSnapshot:
    """Snapshot without the initial refresh, so refresh_count starts at 0."""
    return SystemSnapshot(probe=probe, initial_refresh=False)


@pytest.fixture
def metrics() -> Metrics:
    """Fresh registry per test."""
    return Metrics()


@pytest.fixture
def log_buffer() -> LogBuffer:
    return LogBuffer(capacity=10)


@pytest.fixture
def api_app(snapshot, metrics, log_buffer):
    return create_api_app(snapshot, metrics, log_buffer)


@pytest.fixture
def api_client(api_app) -> TestClient:
    return TestClient(api_app)


@pytest.fixture
def orchestrator_client(metrics) -> TestClient:
    return TestClient(create_orchestrator_app(metrics))


@pytest.fixture
def server_config() -> dict:
    """Flat listener config on ephemeral loopback ports."""
    return {
        "host": "127.0.0.1",
        "api_port": 0,
        "orchestrator_port": 0,
        "limit_concurrency": 50,
        "timeout_keep_alive": 5,
        "request_timeout_sec": 5.0,
    }
