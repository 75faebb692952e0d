"""Bounded parallel aggregation of health probes.

Every probe runs in a worker thread and drops its result into one
asyncio.Queue. The orchestrator races "next result" against the deadline
and stops collecting at whichever comes first. Probes still running at the
deadline are not cancelled: their task is parked in ``_inflight`` until the
thread returns and the late result is thrown away. That is safe because a
ProbeResult is an immutable value that touches no shared state.

The fast path runs the same probes one after another with no deadline.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import Executor, ThreadPoolExecutor
from functools import partial
from typing import Any, TypeVar

from .metrics import DEFAULT_ENTITIES, MetricsCollector, collect_database_health
from .models import HealthReport, MetricsSnapshot, PersistedStateHealth, ProbeResult
from .probes import DatabaseHandle, GatewayClient, Hub, Probe, build_probes, probe_names, run_probe
from .reducer import ResourceThresholds
from .report import ReportAssembler

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Tasks abandoned at a deadline, kept referenced until their thread returns
_inflight: set[asyncio.Task[None]] = set()

SYSTEM_METRICS = "system_metrics"
DATABASE_HEALTH = "database_health"


async def race_with_deadline(
    tasks: Mapping[str, Callable[[], T]],
    budget: float,
    executor: Executor | None = None,
    fill_missing: Callable[[str], T] | None = None,
) -> dict[str, T]:
    """Run blocking callables concurrently and return what finishes within ``budget`` seconds.

    Names that did not produce a value (still running, or raised) are filled
    with ``fill_missing(name)`` when given, otherwise left out.
    """
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[tuple[str, T | None, bool]] = asyncio.Queue()

    async def _emit(name: str, fn: Callable[[], T]) -> None:
        try:
            value = await loop.run_in_executor(executor, fn)
        except Exception:
            logger.exception("Health task %s failed", name)
            queue.put_nowait((name, None, False))
            return
        queue.put_nowait((name, value, True))

    for name, fn in tasks.items():
        task = loop.create_task(_emit(name, fn), name=f"health-{name}")
        _inflight.add(task)
        task.add_done_callback(_inflight.discard)

    results: dict[str, T] = {}
    arrived = 0
    deadline = loop.time() + budget
    while arrived < len(tasks):
        remaining = deadline - loop.time()
        if remaining <= 0:
            break
        try:
            name, value, ok = await asyncio.wait_for(queue.get(), timeout=remaining)
        except asyncio.TimeoutError:
            break
        arrived += 1
        if ok:
            results[name] = value  # type: ignore[assignment]

    # Results that landed right at the deadline still count
    while arrived < len(tasks) and not queue.empty():
        name, value, ok = queue.get_nowait()
        arrived += 1
        if ok:
            results[name] = value  # type: ignore[assignment]

    missing = [name for name in tasks if name not in results]
    if missing:
        if arrived < len(tasks):
            logger.warning(
                "Health deadline of %dms elapsed with %d task(s) pending: %s",
                int(budget * 1000), len(tasks) - arrived, ", ".join(missing),
            )
        if fill_missing is not None:
            for name in missing:
                results[name] = fill_missing(name)
    return results


class HealthAggregator:
    """Runs the probe set and the metrics collectors, then assembles the report.

    Collaborators are injected; the aggregator only reads from them.

    Lifecycle:
        aggregator = HealthAggregator.from_collaborators(db, hub, gateway, ...)
        report = await aggregator.check_full()
        report = aggregator.check_fast()
        aggregator.close()
    """

    def __init__(
        self,
        probes: Sequence[Probe],
        collector: MetricsCollector,
        assembler: ReportAssembler,
        db: DatabaseHandle | None = None,
        fast_probes: Sequence[Probe] | None = None,
        entities: Sequence[str] = DEFAULT_ENTITIES,
        probe_budget: float = 1.0,
        metrics_budget: float = 0.5,
        executor: Executor | None = None,
        workers: int = 16,
    ) -> None:
        self.probes = list(probes)
        self.fast_probes = list(fast_probes) if fast_probes is not None else self.probes
        self.names = probe_names(self.probes)
        if sorted(probe_names(self.fast_probes)) != sorted(self.names):
            raise ValueError("Fast and full probe sets must cover the same names")
        self.collector = collector
        self.assembler = assembler
        self.db = db
        self.entities = tuple(entities)
        self.probe_budget = probe_budget
        self.metrics_budget = metrics_budget
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="health",
        )

    @classmethod
    def from_collaborators(
        cls,
        db: DatabaseHandle | None,
        hub: Hub | None,
        gateway: GatewayClient | None,
        gateway_address: str,
        version: str,
        environment: str,
        thresholds: ResourceThresholds | None = None,
        cpu_sample_seconds: float = 0.25,
        **kwargs: Any,
    ) -> HealthAggregator:
        """Standard wiring: the four probes, psutil metrics, report assembler."""
        return cls(
            probes=build_probes(db, hub, gateway, gateway_address, fast=False),
            fast_probes=build_probes(db, hub, gateway, gateway_address, fast=True),
            collector=MetricsCollector(hub, cpu_sample_seconds=cpu_sample_seconds),
            assembler=ReportAssembler(version, environment, thresholds),
            db=db,
            **kwargs,
        )

    def _database_health(self) -> PersistedStateHealth:
        return collect_database_health(self.db, self.entities)

    def _ordered(self, services: Mapping[str, ProbeResult]) -> dict[str, ProbeResult]:
        return {name: services[name] for name in self.names}

    async def check_full(self) -> HealthReport:
        """All probes in parallel under the probe budget, then metrics under theirs."""
        started = time.perf_counter()
        budget = self.probe_budget

        services = await race_with_deadline(
            {p.name: partial(run_probe, p) for p in self.probes},
            budget,
            self._executor,
            fill_missing=lambda name: ProbeResult.timed_out(name, budget),
        )

        collected: dict[str, Any] = await race_with_deadline(
            {
                SYSTEM_METRICS: self.collector.collect,
                DATABASE_HEALTH: self._database_health,
            },
            self.metrics_budget,
            self._executor,
        )
        metrics = collected.get(SYSTEM_METRICS) or MetricsSnapshot()
        db_health = collected.get(DATABASE_HEALTH) or self._default_database_health()

        report = self.assembler.assemble(self._ordered(services), metrics, db_health, started)
        logger.debug("Full health check: %s in %dms", report.status.value, report.elapsed_ms)
        return report

    def check_fast(self) -> HealthReport:
        """Probes one by one in the calling thread, single metrics pass, no deadline."""
        started = time.perf_counter()
        services = {p.name: run_probe(p) for p in self.fast_probes}
        metrics = self.collector.collect()
        db_health = self._database_health()

        report = self.assembler.assemble(self._ordered(services), metrics, db_health, started)
        logger.debug("Fast health check: %s in %dms", report.status.value, report.elapsed_ms)
        return report

    def _default_database_health(self) -> PersistedStateHealth:
        return PersistedStateHealth(record_counts={entity: 0 for entity in self.entities})

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False)
