"""Resource and record-store snapshots.

Neither collector can fail: every sub-fetch is guarded on its own and a
failure simply leaves that field at zero. These figures feed the resource
thresholds of the status reducer and the report, never a probe status.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Sequence

import psutil

from .formatting import format_bytes
from .models import MetricsSnapshot, PersistedStateHealth, Status
from .probes import DatabaseHandle, Hub

logger = logging.getLogger(__name__)

DEFAULT_ENTITIES = ("users", "active_calls", "call_logs")


def root_path(platform: str | None = None) -> str:
    """Root filesystem of the host: ``C:\\`` on Windows, ``/`` elsewhere."""
    platform = platform or sys.platform
    return "C:\\" if platform.startswith("win") else "/"


class MetricsCollector:
    """Samples CPU, memory, disk and live-client figures."""

    def __init__(self, hub: Hub | None = None, cpu_sample_seconds: float = 0.25) -> None:
        self.hub = hub
        self.cpu_sample_seconds = cpu_sample_seconds

    def collect(self) -> MetricsSnapshot:
        snapshot = MetricsSnapshot()

        # CPU: one aggregate sample over the window
        try:
            snapshot.cpu.usage_percent = float(psutil.cpu_percent(interval=self.cpu_sample_seconds))
        except Exception:
            logger.debug("CPU sample unavailable", exc_info=True)
        try:
            snapshot.cpu.core_count = psutil.cpu_count() or 0
        except Exception:
            logger.debug("CPU count unavailable", exc_info=True)
        try:
            snapshot.cpu.load_averages = [round(v, 2) for v in psutil.getloadavg()]
        except Exception:
            logger.debug("Load averages unavailable", exc_info=True)

        # Memory
        try:
            vm = psutil.virtual_memory()
            snapshot.memory.total_bytes = vm.total
            snapshot.memory.used_bytes = vm.used
            snapshot.memory.available_bytes = vm.available
            snapshot.memory.usage_percent = float(vm.percent)
        except Exception:
            logger.debug("Memory stats unavailable", exc_info=True)

        # Disk (root partition, chosen per call)
        try:
            du = psutil.disk_usage(root_path())
            snapshot.disk.total_bytes = du.total
            snapshot.disk.used_bytes = du.used
            snapshot.disk.free_bytes = du.free
            snapshot.disk.usage_percent = float(du.percent)
        except Exception:
            logger.debug("Disk stats unavailable", exc_info=True)

        # Live real-time clients
        if self.hub is not None:
            try:
                snapshot.network.active_realtime_clients = self.hub.client_count()
            except Exception:
                logger.debug("Hub client count unavailable", exc_info=True)

        return snapshot


def collect_database_health(
    db: DatabaseHandle | None,
    entities: Sequence[str] = DEFAULT_ENTITIES,
) -> PersistedStateHealth:
    """Record counts and storage size; unhealthy when there is no database."""
    health = PersistedStateHealth(
        status=Status.HEALTHY,
        record_counts={entity: 0 for entity in entities},
    )

    if db is None:
        health.status = Status.UNHEALTHY
        return health

    # Counts stay at zero when the connection itself is down
    try:
        db.ping()
    except Exception:
        logger.debug("Database unreachable, skipping record counts", exc_info=True)
        health.status = Status.UNHEALTHY
        return health

    for entity in entities:
        try:
            health.record_counts[entity] = db.count_rows(entity)
        except Exception:
            logger.debug("Row count for %s unavailable", entity, exc_info=True)

    try:
        health.storage_size = format_bytes(db.storage_size())
    except Exception:
        logger.debug("Database size unavailable", exc_info=True)

    return health
