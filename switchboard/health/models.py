"""Health data model — statuses, probe results, metric snapshots, reports.

Everything here is a plain value. ProbeResult is frozen so that a probe task
finishing after its deadline can never alter a report that was already sent.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Union

DetailValue = Union[str, int, float, bool]

_DETAIL_TYPES = (str, int, float, bool)

TIMEOUT_ERROR = "Health check timed out"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(ts: datetime) -> str:
    return ts.isoformat(timespec="seconds").replace("+00:00", "Z")


class Status(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    UNHEALTHY = "unhealthy"
    CRITICAL = "critical"
    TIMEOUT = "timeout"


# ── Probe results ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one probe invocation."""

    name: str
    status: Status
    latency: float  # seconds
    error: str = ""
    details: Mapping[str, DetailValue] = field(default_factory=dict)
    checked_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        for key, value in self.details.items():
            if not isinstance(value, _DETAIL_TYPES):
                raise TypeError(
                    f"Detail {key!r} of probe {self.name!r} has unsupported type "
                    f"{type(value).__name__}"
                )
        # Freeze a private copy so callers can keep mutating their own dict
        object.__setattr__(self, "details", MappingProxyType(dict(self.details)))

    @property
    def response_time_ms(self) -> int:
        return int(round(self.latency * 1000))

    @classmethod
    def timed_out(cls, name: str, budget: float) -> ProbeResult:
        return cls(name=name, status=Status.TIMEOUT, latency=budget, error=TIMEOUT_ERROR)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "status": self.status.value,
            "last_check": _isoformat(self.checked_at),
            "response_time_ms": self.response_time_ms,
        }
        if self.error:
            data["error"] = self.error
        if self.details:
            data["details"] = dict(self.details)
        return data


# ── Metrics ──────────────────────────────────────────────────────────────────


@dataclass
class CPUMetrics:
    usage_percent: float = 0.0
    core_count: int = 0
    load_averages: list[float] = field(default_factory=list)


@dataclass
class MemoryMetrics:
    total_bytes: int = 0
    used_bytes: int = 0
    available_bytes: int = 0
    usage_percent: float = 0.0


@dataclass
class DiskMetrics:
    total_bytes: int = 0
    used_bytes: int = 0
    free_bytes: int = 0
    usage_percent: float = 0.0


@dataclass
class NetworkMetrics:
    active_realtime_clients: int = 0


@dataclass
class MetricsSnapshot:
    """Point-in-time resource figures. Zero means "not available"."""

    cpu: CPUMetrics = field(default_factory=CPUMetrics)
    memory: MemoryMetrics = field(default_factory=MemoryMetrics)
    disk: DiskMetrics = field(default_factory=DiskMetrics)
    network: NetworkMetrics = field(default_factory=NetworkMetrics)

    def to_dict(self) -> dict[str, Any]:
        return {
            "cpu": {
                "usage_percent": self.cpu.usage_percent,
                "core_count": self.cpu.core_count,
                "load_averages": list(self.cpu.load_averages),
            },
            "memory": {
                "total_bytes": self.memory.total_bytes,
                "used_bytes": self.memory.used_bytes,
                "available_bytes": self.memory.available_bytes,
                "usage_percent": self.memory.usage_percent,
            },
            "disk": {
                "total_bytes": self.disk.total_bytes,
                "used_bytes": self.disk.used_bytes,
                "free_bytes": self.disk.free_bytes,
                "usage_percent": self.disk.usage_percent,
            },
            "network": {
                "active_realtime_clients": self.network.active_realtime_clients,
            },
        }


@dataclass
class PersistedStateHealth:
    """Record counts and storage size of the backing database.

    The default value (status=timeout) is what a report carries when the
    collection task misses the metrics deadline.
    """

    status: Status = Status.TIMEOUT
    record_counts: dict[str, int] = field(default_factory=dict)
    storage_size: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "record_counts": dict(self.record_counts),
            "storage_size": self.storage_size,
        }


# ── Report ───────────────────────────────────────────────────────────────────


@dataclass
class HealthReport:
    """Aggregate root returned by both health endpoints."""

    timestamp: datetime
    status: Status
    services: dict[str, ProbeResult]
    system_metrics: MetricsSnapshot
    database_health: PersistedStateHealth
    uptime: str
    version: str
    environment: str
    elapsed: float = 0.0  # seconds spent building the report

    @property
    def elapsed_ms(self) -> int:
        return int(round(self.elapsed * 1000))

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": _isoformat(self.timestamp),
            "status": self.status.value,
            "services": {name: r.to_dict() for name, r in self.services.items()},
            "system_metrics": self.system_metrics.to_dict(),
            "database_health": self.database_health.to_dict(),
            "uptime": self.uptime,
            "version": self.version,
            "environment": self.environment,
        }
