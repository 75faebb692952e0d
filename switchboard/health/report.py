"""Report assembly — metadata, uptime, overall status and handling time."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from datetime import datetime, timezone

import psutil

from .formatting import format_uptime
from .models import HealthReport, MetricsSnapshot, PersistedStateHealth, ProbeResult
from .reducer import ResourceThresholds, reduce_status

logger = logging.getLogger(__name__)

UPTIME_UNAVAILABLE = "Unavailable"


class ReportAssembler:
    """Turns collected results into a HealthReport. Never raises."""

    def __init__(
        self,
        version: str,
        environment: str,
        thresholds: ResourceThresholds | None = None,
        boot_time: Callable[[], float] = psutil.boot_time,
    ) -> None:
        self.version = version
        self.environment = environment
        self.thresholds = thresholds or ResourceThresholds()
        self._boot_time = boot_time

    def uptime(self) -> str:
        """Host uptime as a human string."""
        try:
            return format_uptime(max(time.time() - self._boot_time(), 0))
        except Exception:
            logger.debug("Host boot time unavailable", exc_info=True)
            return UPTIME_UNAVAILABLE

    def assemble(
        self,
        services: Mapping[str, ProbeResult],
        metrics: MetricsSnapshot,
        database_health: PersistedStateHealth,
        started: float,
    ) -> HealthReport:
        """Build the report; ``started`` is a ``time.perf_counter()`` reading."""
        report = HealthReport(
            timestamp=datetime.now(timezone.utc),
            status=reduce_status(services.values(), metrics, self.thresholds),
            services=dict(services),
            system_metrics=metrics,
            database_health=database_health,
            uptime=self.uptime(),
            version=self.version,
            environment=self.environment,
        )
        report.elapsed = time.perf_counter() - started
        return report
