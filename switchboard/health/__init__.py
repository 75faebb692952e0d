"""Health subsystem — probes, bounded aggregator, reducer, report assembly."""

from .aggregator import HealthAggregator, race_with_deadline
from .formatting import format_bytes, format_uptime
from .metrics import MetricsCollector, collect_database_health
from .models import (
    HealthReport,
    MetricsSnapshot,
    PersistedStateHealth,
    ProbeResult,
    Status,
)
from .probes import BackendProbe, DatabaseProbe, GatewayProbe, HubProbe, build_probes
from .reducer import ResourceThresholds, reduce_status
from .report import ReportAssembler
