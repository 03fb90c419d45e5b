"""Unit tests for SystemSnapshot (guarded refresh/get) and the psutil probe."""

import threading

import pytest

from beacon.core.snapshot import HostStats, SystemSnapshot, read_host_stats
from tests.conftest import FakeProbe


class TestSystemSnapshot:
    def test_initial_refresh_by_default(self):
        probe = FakeProbe()
        snap = SystemSnapshot(probe=probe)
        assert probe.calls == 1
        assert snap.refresh_count == 1
        assert snap.get() is not None

    def test_no_initial_refresh(self, snapshot, probe):
        assert snapshot.get() is None
        assert snapshot.refresh_count == 0
        assert probe.calls == 0

    def test_refresh_replaces_stats(self, snapshot):
        first = snapshot.refresh()
        second = snapshot.refresh()
        assert first.cpu_percent == 1.0
        assert second.cpu_percent == 2.0
        assert snapshot.get() is second
        assert snapshot.refresh_count == 2
        assert snapshot.last_refreshed is not None

    def test_probe_failure_keeps_previous_and_releases_lock(self, probe, snapshot):
        good = snapshot.refresh()
        probe.fail = True
        with pytest.raises(RuntimeError):
            snapshot.refresh()
        assert snapshot.get() is good
        assert snapshot.refresh_count == 1
        # lock was released: next refresh proceeds
        probe.fail = False
        snapshot.refresh()
        assert snapshot.refresh_count == 2

    def test_as_payload(self, snapshot):
        assert snapshot.as_payload()["stats"] is None
        snapshot.refresh()
        payload = snapshot.as_payload()
        assert payload["refresh_count"] == 1
        assert payload["stats"]["cpu_percent"] == 1.0
        assert set(payload) == {"stats", "refresh_count", "last_refreshed"}

    def test_concurrent_refreshes_never_overlap(self):
        probe = FakeProbe(delay_sec=0.002)
        snap = SystemSnapshot(probe=probe, initial_refresh=False)

        def worker():
            for _ in range(10):
                snap.refresh()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert probe.max_active == 1
        assert snap.refresh_count == 80
        # last completed refresh wins
        assert snap.get().cpu_percent == float(probe.calls)

    def test_readers_see_whole_stats(self):
        probe = FakeProbe()
        snap = SystemSnapshot(probe=probe)
        seen = []

        def writer():
            for _ in range(200):
                snap.refresh()

        def reader():
            for _ in range(200):
                s = snap.get()
                # FakeProbe writes the call number into both fields of one value
                seen.append(s.cpu_percent == s.ts)

        t1 = threading.Thread(target=writer)
        t2 = threading.Thread(target=reader)
        t1.start()
        t2.start()
        t1.join()
        t2.join()
        assert all(seen)


class TestReadHostStats:
    def test_reads_real_host(self):
        stats = read_host_stats()
        assert isinstance(stats, HostStats)
        assert stats.memory_total > 0
        assert stats.cpu_count >= 1
        assert 0.0 <= stats.memory_percent <= 100.0
        assert stats.process_count > 0
        assert stats.ts > 0

    def test_to_dict_round_fields(self):
        d = read_host_stats().to_dict()
        assert "cpu_percent" in d
        assert "load_avg_1m" in d
