"""Tests for the resource metrics and record-store snapshots."""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from fakes import FakeDatabase, FakeHub
from switchboard.db.sqlite import SQLiteDatabase
from switchboard.health.metrics import MetricsCollector, collect_database_health, root_path
from switchboard.health.models import Status
from switchboard.health.probes import DatabaseProbe


def _fake_psutil() -> MagicMock:
    ps = MagicMock()
    ps.cpu_percent.return_value = 12.5
    ps.cpu_count.return_value = 8
    ps.getloadavg.return_value = (0.5, 0.75, 1.0)
    ps.virtual_memory.return_value = SimpleNamespace(total=1000, used=400, available=600, percent=40.0)
    ps.disk_usage.return_value = SimpleNamespace(total=2000, used=500, free=1500, percent=25.0)
    return ps


class TestRootPath:
    @pytest.mark.parametrize(
        "platform, expected",
        [("win32", "C:\\"), ("linux", "/"), ("darwin", "/")],
    )
    def test_per_platform(self, platform: str, expected: str) -> None:
        assert root_path(platform) == expected


class TestMetricsCollector:
    def test_collects_every_figure(self) -> None:
        ps = _fake_psutil()
        with patch("switchboard.health.metrics.psutil", ps):
            snapshot = MetricsCollector(hub=FakeHub(clients=4), cpu_sample_seconds=0.1).collect()

        ps.cpu_percent.assert_called_once_with(interval=0.1)
        assert snapshot.cpu.usage_percent == 12.5
        assert snapshot.cpu.core_count == 8
        assert snapshot.cpu.load_averages == [0.5, 0.75, 1.0]
        assert snapshot.memory.available_bytes == 600
        assert snapshot.disk.free_bytes == 1500
        assert snapshot.network.active_realtime_clients == 4

    def test_failed_fetch_leaves_zero(self) -> None:
        ps = _fake_psutil()
        ps.virtual_memory.side_effect = OSError("no /proc/meminfo")
        ps.getloadavg.side_effect = AttributeError("getloadavg")
        with patch("switchboard.health.metrics.psutil", ps):
            snapshot = MetricsCollector().collect()

        assert snapshot.memory.usage_percent == 0.0
        assert snapshot.memory.total_bytes == 0
        assert snapshot.cpu.load_averages == []
        # the rest is still collected
        assert snapshot.disk.usage_percent == 25.0
        assert snapshot.network.active_realtime_clients == 0

    def test_real_host(self) -> None:
        snapshot = MetricsCollector(cpu_sample_seconds=0.0).collect()
        assert snapshot.cpu.core_count >= 1
        assert snapshot.memory.total_bytes > 0


class TestDatabaseHealth:
    def test_counts_and_size(self) -> None:
        health = collect_database_health(FakeDatabase(size=1073741824))
        assert health.status == Status.HEALTHY
        assert health.record_counts == {"users": 3, "active_calls": 1, "call_logs": 42}
        assert health.storage_size == "1.0 GB"

    def test_missing_database(self) -> None:
        health = collect_database_health(None)
        assert health.status == Status.UNHEALTHY
        assert health.record_counts == {"users": 0, "active_calls": 0, "call_logs": 0}
        assert health.storage_size == ""

    def test_unreachable_database(self) -> None:
        health = collect_database_health(FakeDatabase(fail_ping=True))
        assert health.status == Status.UNHEALTHY
        assert health.record_counts == {"users": 0, "active_calls": 0, "call_logs": 0}
        assert health.storage_size == ""

    def test_closed_database_agrees_with_probe(self, tmp_path: Path) -> None:
        db = SQLiteDatabase(tmp_path / "switchboard.db")
        db.add_user("alice", "1001")
        db.close()

        health = collect_database_health(db)

        assert health.status == Status.UNHEALTHY
        assert health.record_counts["users"] == 0
        assert DatabaseProbe(db).run().status == Status.UNHEALTHY

    def test_failed_count_stays_zero(self) -> None:
        health = collect_database_health(FakeDatabase(), entities=("users", "voicemails"))
        assert health.status == Status.HEALTHY
        assert health.record_counts == {"users": 3, "voicemails": 0}
