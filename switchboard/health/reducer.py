"""Overall status reduction.

Probe statuses fold monotonically into healthy < warning < unhealthy
(critical probes count as unhealthy, timeouts as healthy). Resource
exhaustion then overrides everything with critical. The fold is a max, so
the arrival order of results cannot change the outcome.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .models import MetricsSnapshot, ProbeResult, Status

_PROBE_SEVERITY = {
    Status.TIMEOUT: 0,
    Status.HEALTHY: 0,
    Status.WARNING: 1,
    Status.UNHEALTHY: 2,
    Status.CRITICAL: 2,
}

_BY_SEVERITY = {0: Status.HEALTHY, 1: Status.WARNING, 2: Status.UNHEALTHY}


@dataclass(frozen=True)
class ResourceThresholds:
    """Usage percentages above which the overall status is forced to critical."""

    cpu_percent: float = 90.0
    memory_percent: float = 95.0
    disk_percent: float = 95.0

    def exceeded(self, metrics: MetricsSnapshot) -> bool:
        return (
            metrics.cpu.usage_percent > self.cpu_percent
            or metrics.memory.usage_percent > self.memory_percent
            or metrics.disk.usage_percent > self.disk_percent
        )


def reduce_status(
    results: Iterable[ProbeResult],
    metrics: MetricsSnapshot,
    thresholds: ResourceThresholds | None = None,
) -> Status:
    """Combine probe statuses and resource thresholds into one status."""
    thresholds = thresholds or ResourceThresholds()
    if thresholds.exceeded(metrics):
        return Status.CRITICAL
    severity = max((_PROBE_SEVERITY[r.status] for r in results), default=0)
    return _BY_SEVERITY[severity]
